from dataclasses import dataclass


@dataclass(frozen=True)
class CategoryPreset:
    name: str
    color: str
    icon: str


CATEGORY_ICONS: tuple[str, ...] = (
    "Utensils",
    "Home",
    "Car",
    "Film",
    "ShoppingBag",
    "Heart",
    "Plane",
    "BookOpen",
    "User",
    "Coffee",
    "Dumbbell",
    "Music",
    "Briefcase",
    "Phone",
    "Laptop",
)

# Seed data for new accounts. Each user gets their own copy as Category rows.
DEFAULT_CATEGORIES: tuple[CategoryPreset, ...] = (
    CategoryPreset("Food & Dining", "#ef4444", "Utensils"),
    CategoryPreset("Housing", "#3b82f6", "Home"),
    CategoryPreset("Transportation", "#f59e0b", "Car"),
    CategoryPreset("Entertainment", "#a855f7", "Film"),
    CategoryPreset("Shopping", "#ec4899", "ShoppingBag"),
    CategoryPreset("Health", "#06b6d4", "Heart"),
    CategoryPreset("Travel", "#f97316", "Plane"),
    CategoryPreset("Education", "#8b5cf6", "BookOpen"),
    CategoryPreset("Personal Care", "#f43f5e", "User"),
)

# Used when a category has no usable colour or icon of its own.
FALLBACK_STYLE = CategoryPreset("Other", "#6b7280", "Tag")

CATEGORY_COLORS: tuple[tuple[str, str], ...] = (
    ("Red", "#ef4444"),
    ("Orange", "#f97316"),
    ("Amber", "#f59e0b"),
    ("Yellow", "#eab308"),
    ("Lime", "#84cc16"),
    ("Green", "#22c55e"),
    ("Emerald", "#10b981"),
    ("Teal", "#14b8a6"),
    ("Cyan", "#06b6d4"),
    ("Sky", "#0ea5e9"),
    ("Blue", "#3b82f6"),
    ("Indigo", "#6366f1"),
    ("Violet", "#8b5cf6"),
    ("Purple", "#a855f7"),
    ("Fuchsia", "#d946ef"),
    ("Pink", "#ec4899"),
    ("Rose", "#f43f5e"),
)

FREQUENCY_LABELS: dict[str, str] = {
    "once": "One-time",
    "daily": "Daily",
    "weekly": "Weekly",
    "biweekly": "Bi-weekly",
    "monthly": "Monthly",
    "quarterly": "Quarterly",
    "yearly": "Yearly",
}
