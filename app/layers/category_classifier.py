"""
Category Classifier for the Affiliate Link Pipeline.
Infers a taxonomy (category, subcategory) from breadcrumbs and title.
"""
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from app.models.errors import InvalidCategory
from app.models.taxonomy import OTHER, is_valid_category, is_valid_subcategory
from app.utils.logger import LayerLogger


# The longest matching keyword wins across all rules ("gaming chair" over
# "gaming"); rule order only breaks ties between equally long keywords.
CATEGORY_RULES: Sequence[Tuple[Tuple[str, ...], str, str]] = (
    # Sports and fitness
    (("running shoe", "sports shoe", "training shoe"), "fashion", "footwear"),
    (("yoga mat", "yoga block", "resistance band"), "fitness_sports", "yoga_fitness"),
    (("dumbbell", "kettlebell", "treadmill", "exercise bike", "home gym", "weight plate"), "fitness_sports", "gym_equipment"),
    (("massage gun", "knee support", "back support", "foam roller"), "fitness_sports", "recovery_support"),
    (("cricket", "football", "badminton", "tennis racket", "cycling"), "fitness_sports", "sports_gear"),

    # Electronics
    (("smartwatch", "smart watch", "fitness band", "fitness tracker"), "electronics", "wearables"),
    (("headphone", "earphone", "earbud", "speaker", "soundbar", "neckband"), "electronics", "audio"),
    (("power bank", "phone case", "screen protector", "mobile charger", "phone holder"), "electronics", "mobile_accessories"),
    (("keyboard", "mouse", "webcam", "usb hub", "pen drive", "hard drive", "ssd"), "electronics", "computer_accessories"),
    (("laptop", "desktop", "computer", "tablet", "monitor"), "electronics", "computers"),
    (("router", "wifi", "wi-fi", "range extender"), "electronics", "networking"),
    (("camera", "lens", "tripod", "gimbal"), "electronics", "cameras"),
    (("smart plug", "smart bulb", "echo", "alexa", "smart home"), "electronics", "smart_devices"),
    (("gaming", "controller", "console"), "electronics", "gaming_electronics"),

    # Automotive
    (("dash cam", "car charger", "car stereo"), "automotive", "car_electronics"),
    (("car cover", "car seat cover", "car accessories", "car mat"), "automotive", "car_accessories"),
    (("bike cover", "helmet", "motorcycle"), "automotive", "bike_accessories"),
    (("tyre inflator", "car wash", "car polish"), "automotive", "safety_maintenance"),

    # Beauty and personal care
    (("trimmer", "shaver", "razor", "beard"), "beauty_personal_care", "grooming"),
    (("hair dryer", "straightener", "shampoo", "conditioner", "hair oil"), "beauty_personal_care", "haircare"),
    (("face wash", "moisturizer", "moisturiser", "sunscreen", "serum", "skincare"), "beauty_personal_care", "skincare"),
    (("perfume", "deodorant", "fragrance", "eau de"), "beauty_personal_care", "fragrance"),
    (("toothbrush", "sanitary", "hand wash", "soap"), "beauty_personal_care", "personal_hygiene"),
    (("massager", "bp monitor", "blood pressure", "thermometer", "nebulizer"), "beauty_personal_care", "wellness_devices"),

    # Fashion
    (("watch",), "fashion", "watches"),
    (("sunglass",), "fashion", "sunglasses"),
    (("backpack", "handbag", "wallet", "bag", "luggage"), "fashion", "bags_wallets"),
    (("necklace", "earring", "bracelet", "jewellery", "jewelry"), "fashion", "jewellery"),
    (("shoe", "sneaker", "sandal", "slipper", "boot", "footwear"), "fashion", "footwear"),
    (("belt", "cap", "scarf", "tie"), "fashion", "fashion_accessories"),
    (("t-shirt", "tshirt", "shirt", "jeans", "sweater", "sweatshirt", "hoodie",
      "pullover", "kurta", "dress", "jacket", "trouser", "clothing"), "fashion", "clothing"),

    # Home and living
    (("cookware", "kitchen", "pressure cooker", "mixer grinder", "kettle", "pan", "tiffin", "bottle"), "home_living", "kitchen"),
    (("vacuum", "mop", "cleaning", "detergent"), "home_living", "cleaning"),
    (("air purifier", "air fryer", "fan", "heater", "iron", "washing machine", "refrigerator", "appliance"), "home_living", "home_appliances"),
    (("bedsheet", "pillow", "blanket", "towel", "mattress", "bedding"), "home_living", "bedding_bath"),
    (("lamp", "led strip", "light", "bulb"), "home_living", "lighting"),
    (("organiser", "organizer", "storage", "rack", "shelf"), "home_living", "storage_organisation"),
    (("sofa", "bed frame", "furniture", "table"), "home_living", "furniture"),
    (("wall art", "decor", "vase", "curtain", "clock"), "home_living", "home_decor"),

    # Office
    (("office chair", "gaming chair", "desk", "chair"), "office_productivity", "chairs_desks"),
    (("printer", "ink cartridge", "toner"), "office_productivity", "printers_accessories"),
    (("notebook", "diary", "pen", "pencil", "stationery"), "office_productivity", "stationery"),
    (("calculator", "whiteboard", "study"), "office_productivity", "study_tools"),
    (("stapler", "paper", "office supplies", "office products"), "office_productivity", "office_supplies"),

    # Kids
    (("diaper", "baby"), "kids_toys", "baby_care"),
    (("puzzle", "learning", "educational"), "kids_toys", "learning_education"),
    (("school bag", "lunch box", "crayon"), "kids_toys", "school_supplies"),
    (("toy", "doll", "lego", "action figure"), "kids_toys", "toys"),

    # Tools
    (("drill", "angle grinder", "power tool", "jigsaw"), "tools_utilities", "power_tools"),
    (("screwdriver", "spanner", "wrench", "plier", "hammer", "tool kit"), "tools_utilities", "hand_tools"),
    (("extension board", "extension cord", "switch", "wire", "electrical"), "tools_utilities", "electricals"),
    (("safety goggles", "gloves", "safety"), "tools_utilities", "safety_equipment"),
    (("screw", "hinge", "hardware", "lock"), "tools_utilities", "hardware"),
)

# Department names, consulted only when no product keyword matched
BREADCRUMB_FALLBACKS: Sequence[Tuple[Tuple[str, ...], str, str]] = (
    (("electronics",), "electronics", OTHER),
    (("home & kitchen", "home and kitchen", "home"), "home_living", OTHER),
    (("fashion",), "fashion", OTHER),
    (("beauty",), "beauty_personal_care", OTHER),
    (("sports", "fitness"), "fitness_sports", OTHER),
)


def _compile(keyword: str) -> re.Pattern:
    # Whole words, plural suffix allowed ("shoes", "watches")
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword) + r"(?:s|es)?(?![a-z0-9])")


def _compile_rules(rules) -> List[Tuple[List[Tuple[str, re.Pattern]], str, str]]:
    return [
        ([(k, _compile(k)) for k in keywords], category, subcategory)
        for keywords, category, subcategory in rules
    ]


_COMPILED_RULES = _compile_rules(CATEGORY_RULES)
_COMPILED_FALLBACKS = _compile_rules(BREADCRUMB_FALLBACKS)

logger = LayerLogger("category_classifier")


def build_classifier_text(category_path: Optional[Iterable[str]], title: Optional[str]) -> str:
    parts = list(category_path or [])
    if title:
        parts.append(title)
    return " ".join(parts).lower()


def classify(category_path: Optional[Iterable[str]] = None, title: Optional[str] = None) -> Tuple[str, str]:
    """
    Infer (category, subcategory) from breadcrumbs and title.

    The longest matching product keyword decides; position in the text
    never does. Department names from breadcrumbs are the fallback.
    """
    text = build_classifier_text(category_path, title)
    if not text:
        return OTHER, OTHER

    best: Optional[Tuple[int, str, str]] = None
    for keyword_patterns, category, subcategory in _COMPILED_RULES:
        for keyword, pattern in keyword_patterns:
            if (best is None or len(keyword) > best[0]) and pattern.search(text):
                best = (len(keyword), category, subcategory)
    if best is not None:
        return best[1], best[2]

    for keyword_patterns, category, subcategory in _COMPILED_FALLBACKS:
        if any(pattern.search(text) for _, pattern in keyword_patterns):
            return category, subcategory
    return OTHER, OTHER


def resolve_category(
    manual_category: Optional[str] = None,
    manual_subcategory: Optional[str] = None,
    category_path: Optional[Iterable[str]] = None,
    title: Optional[str] = None,
    strict: bool = False,
) -> Tuple[str, str]:
    """
    Manual category wins when it validates against the taxonomy.

    An invalid manual category falls back to the classifier, or raises
    InvalidCategory when `strict` is set.
    """
    inferred = classify(category_path, title)

    if not manual_category:
        return inferred

    category = manual_category.strip().lower()
    if not is_valid_category(category):
        if strict:
            raise InvalidCategory(f"unknown category '{manual_category}'")
        logger.log_fallback(
            from_source="manual_category",
            to_source="classifier",
            reason="Manual category not in taxonomy",
            manual_category=manual_category,
            inferred=list(inferred)
        )
        return inferred

    subcategory = (manual_subcategory or "").strip().lower()
    if subcategory and is_valid_subcategory(category, subcategory):
        return category, subcategory
    if subcategory and strict:
        raise InvalidCategory(f"unknown subcategory '{manual_subcategory}' for '{category}'")

    # Keep the inferred subcategory only if it belongs to the manual category
    if inferred[0] == category:
        return category, inferred[1]
    return category, OTHER
