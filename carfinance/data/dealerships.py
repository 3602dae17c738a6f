# -*- coding: utf-8 -*-
"""Partner dealerships customers can send their selection to."""

from typing import Any, Dict, List, Optional

DEALERSHIPS: List[Dict[str, Any]] = [
    {
        "id": "1",
        "name": "Toyota of Dallas",
        "address": "2610 Forest Ln, Dallas, TX",
        "phone": "(214) 555-1001",
        "image_url": "https://placehold.co/800x500?text=Toyota+of+Dallas",
        "rating": 4.6,
        "hours": "Open until 8:00 PM",
        "website": "https://www.toyotaofdallas.com/",
    },
    {
        "id": "2",
        "name": "Toyota North Dallas",
        "address": "12345 Belt Line Rd, Dallas, TX",
        "phone": "(214) 555-1002",
        "image_url": "https://placehold.co/800x500?text=Toyota+North+Dallas",
        "rating": 4.5,
        "hours": "Open until 8:00 PM",
        "website": "https://www.toyotanorthdallas.com/",
    },
    {
        "id": "3",
        "name": "Cowboy Toyota",
        "address": "9525 E R L Thornton Fwy, Dallas, TX",
        "phone": "(214) 555-1003",
        "image_url": "https://placehold.co/800x500?text=Cowboy+Toyota",
        "rating": 4.4,
        "hours": "Open until 8:00 PM",
        "website": "https://www.cowboytoyota.com/",
    },
]

_BY_ID = {d["id"]: d for d in DEALERSHIPS}


def get_dealership(dealer_id: str) -> Optional[Dict[str, Any]]:
    return _BY_ID.get(str(dealer_id))
