"""Label vocabularies: architecture indicators and domain patterns."""

from dataclasses import dataclass

ARCHITECTURES = ("individual", "team", "hybrid")
DOMAINS = ("outdoor", "saas", "ecommerce", "social", "generic")

BASELINE_ARCHITECTURE = "hybrid"
BASELINE_DOMAIN = "generic"

# Labels scored by the fast strategy
FAST_ARCHITECTURES = ("individual", "team")

# Architecture indicators

USER_TABLES = frozenset({"users", "profiles", "user_profiles", "accounts", "members_profiles"})
PERSONAL_CONTENT_TABLES = frozenset(
    {
        "posts",
        "notes",
        "bookmarks",
        "favorites",
        "journals",
        "journal_entries",
        "setups",
        "gear",
        "gear_items",
        "trips",
        "photos",
        "media",
        "reviews",
        "wishlists",
        "collections",
    }
)
TEAM_TABLES = frozenset(
    {"teams", "organizations", "orgs", "workspaces", "companies", "tenants", "groups"}
)
MEMBERSHIP_TABLES = frozenset(
    {
        "team_members",
        "team_memberships",
        "organization_members",
        "organization_memberships",
        "memberships",
        "members",
        "accounts_memberships",
        "workspace_members",
        "group_members",
    }
)
INVITATION_TABLES = frozenset({"invitations", "invites", "team_invitations"})
ROLE_TABLES = frozenset({"roles", "role_permissions", "permissions", "user_roles"})
BILLING_TABLES = frozenset(
    {"subscriptions", "billing_customers", "billing_accounts", "plans", "invoices"}
)
TEAM_COLUMNS = frozenset({"team_id", "organization_id", "org_id", "workspace_id", "tenant_id"})
OWNER_COLUMNS = frozenset({"user_id", "owner_id", "author_id", "created_by"})
PERSONAL_ACCOUNT_COLUMNS = frozenset({"is_personal_account", "personal_account", "account_type"})

# Expected relationship counts per architecture (min, max)
RELATIONSHIP_RANGES: dict[str, tuple[int, int]] = {
    "individual": (2, 8),
    "team": (8, 20),
    "hybrid": (6, 25),
}


# Domain patterns


@dataclass(frozen=True)
class DomainPattern:
    """
    Table/column signature of one content domain.

    Attributes:
        id: Pattern id
        domain: Domain label
        tables: Characteristic table names
        columns: Characteristic column names
        weight: Pattern weight in (0, 1]
        exclusive: Whether a strong match is unlikely to occur outside this domain
    """

    id: str
    domain: str
    tables: frozenset[str]
    columns: frozenset[str]
    weight: float = 1.0
    exclusive: bool = False


# Weights of the four match dimensions
DOMAIN_MATCH_WEIGHTS: dict[str, float] = {
    "table": 0.4,
    "column": 0.25,
    "relationship": 0.2,
    "business_logic": 0.15,
}

# Number of hits at which a dimension counts as a full match
TABLE_SATURATION = 3
COLUMN_SATURATION = 4
RELATIONSHIP_SATURATION = 2
BUSINESS_LOGIC_SATURATION = 2

EXCLUSIVE_BOOST = 1.2

# Generic is a baseline: it never competes above the moderate threshold
GENERIC_BASE_SCORE = 0.3
GENERIC_MAX_SCORE = 0.5

# Discount for domains an architecture makes implausible
UNHINTED_DOMAIN_DISCOUNT = 0.9

DOMAIN_PATTERNS: tuple[DomainPattern, ...] = (
    DomainPattern(
        id="outdoor_gear",
        domain="outdoor",
        tables=frozenset(
            {"gear", "gear_items", "setups", "setup_items", "trips", "trails", "campsites"}
        ),
        columns=frozenset(
            {"weight_grams", "elevation", "trail_difficulty", "base_weight", "brand", "category"}
        ),
        weight=1.0,
        exclusive=True,
    ),
    DomainPattern(
        id="outdoor_adventure",
        domain="outdoor",
        tables=frozenset({"adventures", "routes", "trip_reports", "locations", "checklists"}),
        columns=frozenset({"latitude", "longitude", "distance_km", "season", "terrain"}),
        weight=0.8,
    ),
    DomainPattern(
        id="saas_workspace",
        domain="saas",
        tables=frozenset(
            {
                "organizations",
                "teams",
                "workspaces",
                "projects",
                "team_members",
                "organization_members",
                "accounts_memberships",
            }
        ),
        columns=frozenset({"organization_id", "team_id", "workspace_id", "role", "plan_id"}),
        weight=0.9,
    ),
    DomainPattern(
        id="saas_billing",
        domain="saas",
        tables=frozenset(
            {"subscriptions", "plans", "billing_customers", "usage_records", "api_keys"}
        ),
        columns=frozenset({"stripe_customer_id", "billing_cycle", "trial_ends_at", "seats"}),
        weight=1.0,
        exclusive=True,
    ),
    DomainPattern(
        id="ecommerce_catalog",
        domain="ecommerce",
        tables=frozenset(
            {"products", "categories", "product_variants", "inventory", "brands", "product_images"}
        ),
        columns=frozenset({"sku", "price", "stock_quantity", "compare_at_price", "barcode"}),
        weight=1.0,
        exclusive=True,
    ),
    DomainPattern(
        id="ecommerce_orders",
        domain="ecommerce",
        tables=frozenset({"orders", "order_items", "carts", "cart_items", "payments", "shipments"}),
        columns=frozenset({"total_amount", "shipping_address", "order_status", "quantity"}),
        weight=0.9,
    ),
    DomainPattern(
        id="social_graph",
        domain="social",
        tables=frozenset({"follows", "followers", "friendships", "likes", "comments", "posts"}),
        columns=frozenset({"follower_id", "following_id", "like_count", "bio", "avatar_url"}),
        weight=1.0,
        exclusive=True,
    ),
    DomainPattern(
        id="social_messaging",
        domain="social",
        tables=frozenset({"messages", "conversations", "notifications", "feeds", "reactions"}),
        columns=frozenset({"sender_id", "recipient_id", "read_at", "content"}),
        weight=0.8,
    ),
)

GENERIC_TABLES = frozenset(
    {"users", "profiles", "settings", "audit_logs", "notifications", "files", "tags"}
)

# Plausible domains per architecture (hint passed to the domain classifier)
ARCHITECTURE_DOMAIN_HINTS: dict[str, tuple[str, ...]] = {
    "individual": ("outdoor", "social", "generic"),
    "team": ("saas", "ecommerce", "generic"),
    "hybrid": ("saas", "ecommerce", "social", "generic"),
}

# How naturally each domain fits each architecture
DOMAIN_ARCHITECTURE_ALIGNMENT: dict[str, dict[str, float]] = {
    "outdoor": {"individual": 0.9, "team": 0.3, "hybrid": 0.7},
    "saas": {"individual": 0.2, "team": 0.9, "hybrid": 0.8},
    "ecommerce": {"individual": 0.4, "team": 0.7, "hybrid": 0.9},
    "social": {"individual": 0.8, "team": 0.6, "hybrid": 0.7},
    "generic": {"individual": 0.5, "team": 0.5, "hybrid": 0.5},
}

# Domains that can serve both individuals and teams
HYBRID_CAPABLE_DOMAINS = frozenset({"ecommerce", "saas", "social"})


def patterns_for(domain: str) -> list[DomainPattern]:
    """Get the patterns of one domain."""
    return [p for p in DOMAIN_PATTERNS if p.domain == domain]


def domain_alignment(domain: str, architecture: str) -> float:
    """Get alignment of a domain with an architecture (0.5 if unknown)."""
    return DOMAIN_ARCHITECTURE_ALIGNMENT.get(domain, {}).get(architecture, 0.5)
