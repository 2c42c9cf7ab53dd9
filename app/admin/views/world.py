"""Read-only admin views for world members, heroes and the chronicle."""

from sqladmin import ModelView

from app.models.db_models import ChronicleEntry, Hero, WorldMember


class WorldMemberAdmin(ModelView, model=WorldMember):
    name = "World Member"
    name_plural = "World Members"
    icon = "fa-solid fa-user-group"

    can_create = False
    can_edit = False
    can_delete = False

    column_list = [WorldMember.world_id, WorldMember.user_id, WorldMember.role, WorldMember.joined_at]
    column_searchable_list = [WorldMember.world_id, WorldMember.user_id]
    column_sortable_list = [WorldMember.role, WorldMember.joined_at]


class HeroAdmin(ModelView, model=Hero):
    name = "Hero"
    name_plural = "Heroes"
    icon = "fa-solid fa-shield-halved"

    can_create = False
    can_edit = False
    can_delete = False

    column_list = [Hero.id, Hero.name, Hero.world_id, Hero.owner_user_id, Hero.created_at]
    column_searchable_list = [Hero.name, Hero.world_id, Hero.owner_user_id]
    column_sortable_list = [Hero.name, Hero.created_at]

    column_details_list = [
        Hero.id,
        Hero.world_id,
        Hero.owner_user_id,
        Hero.name,
        Hero.img,
        Hero.characteristics_json,
        Hero.skills_json,
        Hero.created_at,
    ]


class ChronicleEntryAdmin(ModelView, model=ChronicleEntry):
    name = "Chronicle Entry"
    name_plural = "Chronicle"
    icon = "fa-solid fa-scroll"

    can_create = False
    can_edit = False
    can_delete = False

    column_list = [
        ChronicleEntry.world_id,
        ChronicleEntry.seq,
        ChronicleEntry.event,
        ChronicleEntry.whisper,
        ChronicleEntry.created_at,
    ]
    column_searchable_list = [ChronicleEntry.event, ChronicleEntry.world_id]
    column_sortable_list = [ChronicleEntry.seq, ChronicleEntry.created_at]
    column_default_sort = ("created_at", True)

    column_details_list = [
        ChronicleEntry.id,
        ChronicleEntry.world_id,
        ChronicleEntry.seq,
        ChronicleEntry.event,
        ChronicleEntry.payload_json,
        ChronicleEntry.content,
        ChronicleEntry.whisper,
        ChronicleEntry.recipient_user_id,
        ChronicleEntry.created_at,
    ]

    can_export = True
    export_max_rows = 10000
