"""Sample proposal configuration snapshots for testing.

Snapshots use the persisted camelCase shape so they also exercise
snapshot restoration.
"""

from typing import Any, Dict


# =============================================================================
# ASPHALT-ONLY ROOF
# =============================================================================

def get_asphalt_snapshot() -> Dict[str, Any]:
    """20 squares + 10% waste = 22 effective squares, landmark selected.

    Tier bases: landmark 15,400 / pro 15,840 / northgate 17,600.
    """
    return {
        "company": {
            "name": "Hy-Tech Roofing",
            "phone": "5085551234",
            "email": "office@hytech.example",
        },
        "customer": {
            "name": "Jane Homeowner",
            "providedOn": "2024-03-05",
            "tel": "15085550000",
            "street": "12 Elm St",
            "city": "Worcester",
            "state": "MA",
            "zip": "01602",
        },
        "measure": {
            "roofSquares": 20,
            "wastePct": 10,
            "feetEaves": 120,
            "feetRakes": 60,
            "feetRidge": 40,
        },
        "workDomain": {"roofing": True},
        "selectedWork": {"asphalt": True},
        "pricing": {
            "asphaltSelected": "landmark",
            "hideTotalsInPrint": False,
        },
    }


# =============================================================================
# MULTI-TRADE PROPOSAL
# =============================================================================

def get_full_snapshot() -> Dict[str, Any]:
    """Roofing (asphalt), vinyl siding, decking and four extras.

    Expected:
        asphalt landmark     15,400
        vinyl siding 10 sq   11,000
        decking              12,940
        plywood 3 sq x 360    1,080
        chimney medium+crk    1,650
        trim 20 ft x 17         340
        gutters               2,380
        grand total          44,790
    """
    snapshot = get_asphalt_snapshot()
    snapshot["workDomain"] = {"roofing": True, "siding": True, "decking": True}
    snapshot["selectedWork"] = {"asphalt": True, "sidingCategories": ["vinyl"]}
    snapshot["pricing"].update({
        "siding": {
            "areas": "all four walls",
            "byCategory": {
                "vinyl": {"product": "monogram", "squares": 10},
            },
        },
        "decking": {
            "areas": "rear deck",
            "materials": {"pt": True, "azek": True},
            "materialSqft": 100,
            "railing": {"cable": True},
            "railingLinearFt": 10,
            "framing": {"groundLevel": True, "groundLevelSqft": 100},
            "concrete": {"sonoTubes": True, "sonoTubesCount": 2, "landing": True, "landingSqft": 10},
            "skirtTrim": {"azek": True, "linearFt": 10},
        },
        "plywood": {"selected": True, "squares": 3, "mode": "replace"},
        "chimney": {"selected": True, "size": "medium", "cricket": True},
        "trim": {
            "selected": True,
            "material": "azek",
            "installMode": "new",
            "feet": {"soffit": 10, "fascias": 10},
        },
        "gutters": {
            "selected": True,
            "type": "aluminum5",
            "feet": 100,
            "installMode": "new",
            "downspouts": {"type": "down5", "feet": 20},
            "leafGuards": {"selected": True, "price": 300},
        },
        "skylights": {"selected": True, "complexity": "replacing_complex"},
        "detached": {"selected": True, "squares": 5, "type": "garage"},
    })
    snapshot["photos"] = {
        "roofing_asphalt": [
            {"name": "Front slope", "dataUrl": "data:image/png;base64,AAAA"},
            {"url": "photos/back.png"},
        ],
    }
    return snapshot
