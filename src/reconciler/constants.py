"""Routing tables, lexicons, and thresholds for the reconciliation engine."""

from reconciler.enums import CanonicalCategory, ConstraintScope, ConstraintTargetType

# --- Canonical schema ---

CANONICAL_CATEGORIES: tuple[CanonicalCategory, ...] = tuple(CanonicalCategory)

# Legacy documents stored free-text extras next to each array field.
LEGACY_OTHER_FIELDS: dict[CanonicalCategory, str] = {
    CanonicalCategory.SKIN_TYPE: "other_skin_type",
    CanonicalCategory.HAIR_TYPE: "other_hair_type",
    CanonicalCategory.FOOD_PREFERENCES: "other_food_preferences",
    CanonicalCategory.LIFESTYLE: "other_lifestyle",
    CanonicalCategory.GENRE_PREFERENCES: "other_genre_preferences",
}

LEGACY_CUSTOM_PREFERENCES_FIELD = "custom_preferences"
LEGACY_CONSTRAINT_LIST_FIELDS = ("avoidIngredients", "avoidBrands", "avoidProductForms")

# "Other" is a form affordance, never a stored preference.
PLACEHOLDER_VALUES = frozenset({"other"})

# --- Confidence ---

MIN_AUTO_ROUTE_CONFIDENCE = 0.6
HIGH_CONFIDENCE = 0.8
DEFAULT_CONFIDENCE = 1.0
# Scope memory entries carry no score of their own.
DEFAULT_SCOPE_MEMORY_CONFIDENCE = 0.7

# --- Review queue ---

CONSTRAINT_KEY_PREFIX = "constraint:"

# --- Routing ---

CATEGORY_ROUTING_MAP: dict[str, CanonicalCategory] = {
    # food
    "food": CanonicalCategory.FOOD_PREFERENCES,
    "cuisine": CanonicalCategory.FOOD_PREFERENCES,
    "diet": CanonicalCategory.FOOD_PREFERENCES,
    "dietary": CanonicalCategory.FOOD_PREFERENCES,
    "nutrition": CanonicalCategory.FOOD_PREFERENCES,
    "eating": CanonicalCategory.FOOD_PREFERENCES,
    "food_preferences": CanonicalCategory.FOOD_PREFERENCES,
    # skin
    "skin": CanonicalCategory.SKIN_TYPE,
    "skincare": CanonicalCategory.SKIN_TYPE,
    "skin_type": CanonicalCategory.SKIN_TYPE,
    # hair
    "hair": CanonicalCategory.HAIR_TYPE,
    "haircare": CanonicalCategory.HAIR_TYPE,
    "hair_type": CanonicalCategory.HAIR_TYPE,
    # genres (movies/books/music stay in their own custom categories)
    "genre": CanonicalCategory.GENRE_PREFERENCES,
    "genres": CanonicalCategory.GENRE_PREFERENCES,
    "genre_preferences": CanonicalCategory.GENRE_PREFERENCES,
    # lifestyle
    "lifestyle": CanonicalCategory.LIFESTYLE,
    "fitness": CanonicalCategory.LIFESTYLE,
    "routines": CanonicalCategory.LIFESTYLE,
    "habits": CanonicalCategory.LIFESTYLE,
    # goals
    "goals": CanonicalCategory.GOALS,
    "objectives": CanonicalCategory.GOALS,
    "targets": CanonicalCategory.GOALS,
}

CONSTRAINT_SCOPE_MAP: dict[str, ConstraintScope] = {
    "skin": ConstraintScope.SKINCARE,
    "skincare": ConstraintScope.SKINCARE,
    "beauty": ConstraintScope.SKINCARE,
    "hair": ConstraintScope.HAIRCARE,
    "haircare": ConstraintScope.HAIRCARE,
    "food": ConstraintScope.FOOD,
    "diet": ConstraintScope.FOOD,
    "dietary": ConstraintScope.FOOD,
    "cuisine": ConstraintScope.FOOD,
    "nutrition": ConstraintScope.FOOD,
    "eating": ConstraintScope.FOOD,
    "movies": ConstraintScope.ENTERTAINMENT,
    "books": ConstraintScope.ENTERTAINMENT,
    "music": ConstraintScope.ENTERTAINMENT,
    "tv": ConstraintScope.ENTERTAINMENT,
    "entertainment": ConstraintScope.ENTERTAINMENT,
    "supplements": ConstraintScope.SUPPLEMENTS,
    "vitamins": ConstraintScope.SUPPLEMENTS,
    "wellness": ConstraintScope.SUPPLEMENTS,
}

# Checked in order; first hit wins.
RULE_TARGET_HINTS: tuple[tuple[tuple[str, ...], ConstraintTargetType], ...] = (
    (("ingredient",), ConstraintTargetType.INGREDIENT),
    (("brand",), ConstraintTargetType.BRAND),
    (("genre",), ConstraintTargetType.GENRE),
    (("food", "cuisine"), ConstraintTargetType.FOOD_TYPE),
    (("format", "form"), ConstraintTargetType.FORMAT),
)

DEFAULT_SCOPE_BY_TARGET: dict[ConstraintTargetType, ConstraintScope] = {
    ConstraintTargetType.INGREDIENT: ConstraintScope.GLOBAL,
    ConstraintTargetType.BRAND: ConstraintScope.GLOBAL,
    ConstraintTargetType.GENRE: ConstraintScope.ENTERTAINMENT,
    ConstraintTargetType.FOOD_TYPE: ConstraintScope.FOOD,
    ConstraintTargetType.FORMAT: ConstraintScope.SKINCARE,
    ConstraintTargetType.RULE: ConstraintScope.GLOBAL,
}

# --- Classifier lexicons ---

GENRE_KEYWORDS = (
    "horror", "comedy", "drama", "action", "thriller", "romance", "sci-fi",
    "fantasy", "documentary", "anime", "musical", "western", "tragedy",
)
FOOD_KEYWORDS = (
    "food", "fast food", "junk food", "processed", "fried", "spicy", "sweet",
    "sour", "bitter", "meat", "vegetarian", "vegan", "organic",
)
FORMAT_KEYWORDS = (
    "spray", "gel", "cream", "lotion", "serum", "oil", "powder", "capsule",
    "tablet", "liquid", "foam", "mist",
)
INGREDIENT_KEYWORDS = (
    "vitamin", "acid", "retinol", "niacinamide", "hyaluronic", "glycolic",
    "salicylic", "peptide", "collagen", "caffeine", "alcohol", "paraben",
    "sulfate", "silicone", "fragrance", "oil", "butter", "extract", "sugar",
    "salt", "gluten", "dairy", "soy", "nut",
)
BRAND_KEYWORDS = ("brand", "company", "products from")

UNMATCHED_CONSTRAINT_CONFIDENCE = 0.5
EXTRA_KEYWORD_BONUS = 0.05
MAX_CLASSIFIER_CONFIDENCE = 0.95
