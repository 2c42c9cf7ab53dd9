"""Admin model view configurations."""

from app.admin.views.montage import ActiveTestAdmin, ArchivedTestAdmin, DraftTestAdmin
from app.admin.views.world import ChronicleEntryAdmin, HeroAdmin, WorldMemberAdmin

__all__ = [
    "ActiveTestAdmin",
    "DraftTestAdmin",
    "ArchivedTestAdmin",
    "WorldMemberAdmin",
    "HeroAdmin",
    "ChronicleEntryAdmin",
]
