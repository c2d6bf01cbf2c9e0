"""Service packages the studio sells, keyed by package id."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

SERVICE_TYPES = {
    "personal": "1-to-1 Personal Training",
    "buddy": "Buddy Personal Training",
    "group": "Group Strength Training (GST)",
    "online": "Online Personal Training",
}


@dataclass(frozen=True)
class ServicePackage:
    id: str
    name: str
    type: str
    # None means unlimited sessions
    sessions: Optional[int]
    duration_minutes: int
    price: float
    validity_months: int
    description: str
    features: Tuple[str, ...] = field(default_factory=tuple)
    is_popular: bool = False

    @property
    def price_per_session(self) -> float:
        if self.sessions:
            return round(self.price / self.sessions, 2)
        return self.price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "type_label": SERVICE_TYPES[self.type],
            "sessions": self.sessions if self.sessions is not None else "unlimited",
            "duration": self.duration_minutes,
            "price": self.price,
            "price_per_session": self.price_per_session,
            "validity": self.validity_months,
            "is_popular": self.is_popular,
            "description": self.description,
            "features": list(self.features),
        }


_PERSONAL = "1-to-1 Personal Training (1 hour per session)"
_BUDDY = "Buddy Personal Training (Train in pairs, 1 hour per session)"
_GROUP = "Group Strength Training (Gain strength in small group environment, 40mins per session)"

SERVICE_PACKAGES: Tuple[ServicePackage, ...] = (
    ServicePackage(
        "personal-adhoc", "Ad-hoc Session", "personal", 1, 60, 180, 1, _PERSONAL,
        ("Personalized workout plan", "One-on-one attention", "Flexible scheduling"),
    ),
    ServicePackage(
        "personal-10", "10 Sessions Package", "personal", 10, 60, 1500, 3, _PERSONAL,
        ("Personalized workout plan", "One-on-one attention", "3 months validity", "Progress tracking"),
    ),
    ServicePackage(
        "personal-24", "24 Sessions Package", "personal", 24, 60, 3350, 6, _PERSONAL,
        ("Personalized workout plan", "One-on-one attention", "6 months validity", "Progress tracking",
         "Nutrition guidance"),
    ),
    ServicePackage(
        "personal-36", "36 Sessions Package", "personal", 36, 60, 4500, 8, _PERSONAL,
        ("Personalized workout plan", "One-on-one attention", "8 months validity", "Progress tracking",
         "Nutrition guidance", "Monthly assessments"),
    ),
    ServicePackage(
        "buddy-10", "10 Sessions Package", "buddy", 10, 60, 1500, 3, _BUDDY,
        ("Train with a friend", "Shared motivation", "3 months validity", "Cost-effective"),
        is_popular=True,
    ),
    ServicePackage(
        "buddy-24", "24 Sessions Package", "buddy", 24, 60, 3500, 6, _BUDDY,
        ("Train with a friend", "Shared motivation", "6 months validity", "Progress tracking"),
    ),
    ServicePackage(
        "gst-8week", "8-Week Programme", "group", 24, 40, 999, 2, _GROUP,
        ("24 sessions across 8 weeks", "Small group environment", "Strength focused", "Community support"),
    ),
    ServicePackage(
        "gst-8sessions", "8 Sessions Package", "group", 8, 40, 299, 1, _GROUP,
        ("Flexible scheduling", "Small group environment", "Strength focused", "1 month validity"),
    ),
    ServicePackage(
        "online-elite", "Elite Plan", "online", None, 60, 199, 1, "Online Personal Training",
        ("Unlimited sessions", "Virtual training", "Custom workout plans", "Nutrition guidance", "24/7 support"),
    ),
)

_BY_ID = {p.id: p for p in SERVICE_PACKAGES}


def get_package(package_id: str) -> Optional[ServicePackage]:
    return _BY_ID.get(str(package_id or "").strip())


def packages_by_type(service_type: Optional[str] = None) -> List[ServicePackage]:
    if not service_type:
        return list(SERVICE_PACKAGES)
    return [p for p in SERVICE_PACKAGES if p.type == service_type]
