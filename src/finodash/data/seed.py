"""Seed dataset bundled with the dashboard.

The seed is the baseline every fresh install starts from and the fallback
whenever the durable store has nothing for a collection. Records are kept in
their persisted (camelCase) shape. ``seed_blob()`` always returns a deep copy.

The ledger in ``SEED_POINTS`` and ``User.points`` disagree for some users on
purpose: they are maintained by different code paths.
"""

from __future__ import annotations

import copy
from typing import Any

from finodash.data.schemas import DEFAULT_CONTRIBUTION_RATE

SEED_USERS: list[dict[str, Any]] = [
    {"id": "u1", "name": "Ayesha Rahman", "email": "ayesha@example.com", "phone": "01711000001", "points": 1250, "password": "member123"},
    {"id": "u2", "name": "Tanvir Hasan", "email": "tanvir@example.com", "phone": "01711000002", "points": 430, "password": "member123"},
    {"id": "u3", "name": "Nusrat Jahan", "email": "nusrat@example.com", "phone": "01711000003", "points": 980, "password": "member123"},
    {"id": "u4", "name": "Rafiq Islam", "email": "rafiq@example.com", "phone": "01711000004", "points": 0, "password": "member123"},
    {"id": "u5", "name": "Sadia Akter", "email": "sadia@example.com", "phone": "01711000005", "points": 2210, "password": "member123"},
    {"id": "u6", "name": "Imran Chowdhury", "email": "imran@example.com", "phone": "01711000006", "points": 75, "password": "member123"},
    {"id": "u7", "name": "Farhana Kabir", "email": "farhana@example.com", "phone": "01711000007", "points": 640, "password": "member123"},
    {"id": "u8", "name": "Mehedi Hossain", "email": "mehedi@example.com", "phone": "01711000008", "points": 310, "password": "member123"},
]

SEED_MERCHANTS: list[dict[str, Any]] = [
    {"id": "m1", "storeName": "Green Grocers", "owner": "Karim Uddin", "email": "green@shop.com", "password": "merchant123", "phone": "01811000001", "address": "12 Lake Road", "status": "active"},
    {"id": "m2", "storeName": "Urban Threads", "owner": "Laila Ahmed", "email": "threads@shop.com", "password": "merchant123", "phone": "01811000002", "address": "4 Market Street", "status": "active"},
    {"id": "m3", "storeName": "Byte Electronics", "owner": "Shafiq Rahman", "email": "byte@shop.com", "password": "merchant123", "phone": "01811000003", "address": "88 Tech Avenue", "status": "active"},
    {"id": "m4", "storeName": "Cafe Mocha", "owner": "Tania Sultana", "email": "mocha@shop.com", "password": "merchant123", "phone": "01811000004", "address": "3 Park Lane", "status": "active"},
]

SEED_PURCHASES: list[dict[str, Any]] = [
    {"id": "p1", "customerId": "u1", "merchantId": "m1", "amount": 1200.0, "approved": True, "category": "groceries", "date": "2024-01-05"},
    {"id": "p2", "customerId": "u2", "merchantId": "m2", "amount": 3400.0, "approved": False, "category": "fashion", "date": "2024-01-07"},
    {"id": "p3", "customerId": "u3", "merchantId": "m3", "amount": 15600.0, "approved": True, "category": "electronics", "date": "2024-01-09"},
    {"id": "p4", "customerId": "u1", "merchantId": "m4", "amount": 450.0, "approved": False, "category": "food", "date": "2024-01-11"},
    {"id": "p5", "customerId": "u5", "merchantId": "m1", "amount": 2100.0, "approved": True, "category": "groceries", "date": "2024-01-12"},
    {"id": "p6", "customerId": "u7", "merchantId": "m2", "amount": 5200.0, "approved": False, "category": "fashion", "date": "2024-01-14"},
    {"id": "p7", "customerId": "u7", "merchantId": "m4", "amount": 380.0, "approved": True, "category": "food", "date": "2024-01-15"},
    {"id": "p8", "customerId": "u6", "merchantId": "m3", "amount": 890.0, "approved": False, "category": "electronics", "date": "2024-01-18"},
    {"id": "p9", "customerId": "u8", "merchantId": "m1", "amount": 760.0, "approved": False, "category": "groceries", "date": "2024-01-20"},
    {"id": "p10", "customerId": "u4", "merchantId": "m4", "amount": 220.0, "approved": False, "category": "food", "date": "2024-01-21"},
]

SEED_NOTIFICATIONS: list[dict[str, Any]] = [
    {"id": "n1", "text": "Purchase p1 approved", "type": "approval"},
    {"id": "n2", "text": "Purchase p3 approved", "type": "approval"},
    {"id": "n3", "text": "Contribution rate set to 10%", "type": "info"},
    {"id": "n4", "text": "Purchase p8 is awaiting review", "type": "warning"},
]

SEED_POINTS: dict[str, int] = {
    "u1": 1250,
    "u2": 430,
    "u3": 1000,
    "u4": 0,
    "u5": 2210,
    "u6": 75,
    "u7": 640,
    "u8": 290,
}


def seed_blob() -> dict[str, Any]:
    """A fresh copy of the seed dataset in ``app-data`` shape."""
    return copy.deepcopy({
        "users": SEED_USERS,
        "merchants": SEED_MERCHANTS,
        "purchases": SEED_PURCHASES,
        "notifications": SEED_NOTIFICATIONS,
        "points": SEED_POINTS,
        "contributionRate": DEFAULT_CONTRIBUTION_RATE,
    })
