"""
Plan capabilities per role.

Single source of truth for what each (role, plan) combination may do.
Combinations not listed fall back to the role's Free row.
"""
from typing import Dict, List, NamedTuple, Optional, Tuple

ENTREPRENEUR = "Entrepreneur"
INVESTOR = "Investor"
ROLES: List[str] = [ENTREPRENEUR, INVESTOR]

FREE_PLAN = "Free"
BASIC_PLAN = "Basic"
PREMIUM_PLAN = "Premium"
INVESTOR_ACCESS_PLAN = "Investor Access Plan"
PLAN_NAMES: List[str] = [FREE_PLAN, BASIC_PLAN, PREMIUM_PLAN, INVESTOR_ACCESS_PLAN]

# Label a user falls back to after cancellation or expiry
BASE_PLAN = BASIC_PLAN


class PlanCapabilities(NamedTuple):
    global_visibility: bool
    pitch_limit: int
    documents_allowed: bool
    investor_access_global: bool
    featured_in_search: bool


NO_CAPABILITIES = PlanCapabilities(
    global_visibility=False,
    pitch_limit=0,
    documents_allowed=False,
    investor_access_global=False,
    featured_in_search=False,
)

PLAN_CAPABILITIES: Dict[Tuple[str, str], PlanCapabilities] = {
    (ENTREPRENEUR, FREE_PLAN): NO_CAPABILITIES,
    (ENTREPRENEUR, BASIC_PLAN): PlanCapabilities(
        global_visibility=False,
        pitch_limit=1,
        documents_allowed=True,
        investor_access_global=False,
        featured_in_search=False,
    ),
    (ENTREPRENEUR, PREMIUM_PLAN): PlanCapabilities(
        global_visibility=True,
        pitch_limit=5,
        documents_allowed=True,
        investor_access_global=True,
        featured_in_search=True,
    ),
    (INVESTOR, FREE_PLAN): NO_CAPABILITIES,
    (INVESTOR, INVESTOR_ACCESS_PLAN): PlanCapabilities(
        global_visibility=True,
        pitch_limit=0,
        documents_allowed=False,
        investor_access_global=True,
        featured_in_search=False,
    ),
}


def normalize_role(role: Optional[str]) -> Optional[str]:
    """Map case variants ("entrepreneur", "INVESTOR") onto the closed role set."""
    if not role:
        return None
    for known in ROLES:
        if role.strip().lower() == known.lower():
            return known
    return None


def normalize_plan(plan: Optional[str]) -> str:
    """Map case variants of a plan label onto the closed plan set (default Free)."""
    if not plan:
        return FREE_PLAN
    for known in PLAN_NAMES:
        if plan.strip().lower() == known.lower():
            return known
    return FREE_PLAN


def get_capabilities(role: Optional[str], plan: Optional[str]) -> PlanCapabilities:
    """
    Look up capabilities for a role and plan label.

    Args:
        role: User role (Entrepreneur or Investor, any case)
        plan: Plan label (Free, Basic, Premium, Investor Access Plan, any case)

    Returns:
        PlanCapabilities for the combination, the role's Free row when the
        plan is not sold to that role, or NO_CAPABILITIES for unknown roles.
    """
    role_key = normalize_role(role)
    if role_key is None:
        return NO_CAPABILITIES
    plan_key = normalize_plan(plan)
    return PLAN_CAPABILITIES.get((role_key, plan_key), PLAN_CAPABILITIES[(role_key, FREE_PLAN)])


def plans_with_global_visibility(role: str = ENTREPRENEUR) -> List[str]:
    """Plan labels whose holders of ``role`` are visible to every viewer."""
    return [
        plan for (plan_role, plan), caps in PLAN_CAPABILITIES.items()
        if plan_role == role and caps.global_visibility
    ]
