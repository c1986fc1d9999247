"""
Central constants for the RA portal.
"""
from __future__ import annotations

ROLE_AMBASSADOR = "ambassador"
ROLE_PRESIDENT = "president"
ROLE_SUPERADMIN = "superadmin"

# key -> display name
SYSTEM_ROLES = {
    ROLE_AMBASSADOR: "Ambassador",
    ROLE_PRESIDENT: "Association President",
    ROLE_SUPERADMIN: "Super Admin",
}

# Roles that need the shared passcode at registration and login.
PASSCODE_ROLES = frozenset({ROLE_SUPERADMIN, ROLE_PRESIDENT})

USER_STATUSES = ("active", "inactive", "suspended")
INITIAL_RANK = "Candidate"

OFFICIAL_ASSOCIATIONS = (
    "Ogun State Baptist Conference",
    "Abeokuta Baptist Association",
    "Egba Baptist Association",
    "Ijebu Baptist Association",
    "Remo Baptist Association",
    "Yewa Baptist Association",
    "Ifo Baptist Association",
    "Ota Baptist Association",
)

PAYMENT_TYPES = ("dues", "exam", "camp")
PAYMENT_STATUSES = ("pending", "approved", "rejected")

CAMP_TYPES = ("Annual Camp", "Leadership Retreat", "Youth Conference")
CAMP_REGISTRATION_STATUSES = ("pending", "confirmed", "cancelled")

NOTIFICATION_TYPES = ("exam_result", "payment_status", "camp_status", "system")

BLOG_STATUSES = ("draft", "published")
AD_PLACEMENTS = ("homepage", "dashboard", "public")
MEDIA_TYPES = ("video", "document", "other")

# Lowest to highest.
OFFICIAL_RANKS = (
    "Candidate",
    "Assistant Intern",
    "Intern",
    "Senior Intern",
    "Envoy",
    "Special Envoy",
    "Senior Envoy",
    "Dean",
    "Ambassador",
    "Ambassador Extraordinary",
    "Ambassador Plenipotentiary",
)
