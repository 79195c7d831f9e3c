"""
Canonical product taxonomy - single source of truth for category keys.
"""
from typing import Dict, List

OTHER = "other"

TAXONOMY: Dict[str, Dict] = {
    "electronics": {
        "label": "Electronics",
        "subcategories": {
            "audio": "Audio",
            "mobile_accessories": "Mobile Accessories",
            "computers": "Computers",
            "computer_accessories": "Computer Accessories",
            "smart_devices": "Smart Devices",
            "cameras": "Cameras",
            "wearables": "Wearables",
            "networking": "Networking",
            "gaming_electronics": "Gaming Electronics",
        },
    },
    "home_living": {
        "label": "Home & Living",
        "subcategories": {
            "kitchen": "Kitchen",
            "home_appliances": "Home Appliances",
            "furniture": "Furniture",
            "home_decor": "Home Decor",
            "lighting": "Lighting",
            "cleaning": "Cleaning",
            "storage_organisation": "Storage & Organisation",
            "bedding_bath": "Bedding & Bath",
        },
    },
    "fashion": {
        "label": "Fashion",
        "subcategories": {
            "clothing": "Clothing",
            "footwear": "Footwear",
            "bags_wallets": "Bags & Wallets",
            "watches": "Watches",
            "sunglasses": "Sunglasses",
            "jewellery": "Jewellery",
            "fashion_accessories": "Fashion Accessories",
        },
    },
    "beauty_personal_care": {
        "label": "Beauty & Personal Care",
        "subcategories": {
            "grooming": "Grooming",
            "skincare": "Skincare",
            "haircare": "Haircare",
            "fragrance": "Fragrance",
            "personal_hygiene": "Personal Hygiene",
            "wellness_devices": "Wellness Devices",
        },
    },
    "fitness_sports": {
        "label": "Fitness & Sports",
        "subcategories": {
            "gym_equipment": "Gym Equipment",
            "yoga_fitness": "Yoga & Fitness",
            "sports_gear": "Sports Gear",
            "outdoor_fitness": "Outdoor Fitness",
            "recovery_support": "Recovery & Support",
        },
    },
    "office_productivity": {
        "label": "Office & Productivity",
        "subcategories": {
            "office_supplies": "Office Supplies",
            "stationery": "Stationery",
            "chairs_desks": "Chairs & Desks",
            "study_tools": "Study Tools",
            "printers_accessories": "Printers & Accessories",
        },
    },
    "automotive": {
        "label": "Automotive",
        "subcategories": {
            "car_accessories": "Car Accessories",
            "bike_accessories": "Bike Accessories",
            "safety_maintenance": "Safety & Maintenance",
            "car_electronics": "Car Electronics",
        },
    },
    "kids_toys": {
        "label": "Kids & Toys",
        "subcategories": {
            "toys": "Toys",
            "learning_education": "Learning & Education",
            "baby_care": "Baby Care",
            "school_supplies": "School Supplies",
        },
    },
    "tools_utilities": {
        "label": "Tools & Utilities",
        "subcategories": {
            "power_tools": "Power Tools",
            "hand_tools": "Hand Tools",
            "electricals": "Electricals",
            "hardware": "Hardware",
            "safety_equipment": "Safety Equipment",
        },
    },
    OTHER: {
        "label": "Other",
        "subcategories": {
            OTHER: "Other",
        },
    },
}


def is_valid_category(category: str) -> bool:
    return category in TAXONOMY


def is_valid_subcategory(category: str, subcategory: str) -> bool:
    """"other" is accepted under every category as the unspecified bucket."""
    if not is_valid_category(category):
        return False
    return subcategory == OTHER or subcategory in TAXONOMY[category]["subcategories"]


def list_categories() -> List[Dict[str, str]]:
    return [{"key": key, "label": value["label"]} for key, value in TAXONOMY.items()]


def list_subcategories(category: str) -> List[Dict[str, str]]:
    if not is_valid_category(category):
        return []
    return [
        {"key": key, "label": label}
        for key, label in TAXONOMY[category]["subcategories"].items()
    ]
