"""Read-only admin views for active, draft and archived montage tests."""

from sqladmin import ModelView

from app.models.db_models import ActiveTest, ArchivedTest, DraftTest


class ActiveTestAdmin(ModelView, model=ActiveTest):
    name = "Active Test"
    name_plural = "Active Tests"
    icon = "fa-solid fa-hourglass-half"

    can_create = False
    can_edit = False
    can_delete = False

    column_list = [ActiveTest.world_id, ActiveTest.test_id, ActiveTest.status, ActiveTest.updated_at]
    column_searchable_list = [ActiveTest.world_id, ActiveTest.test_id]
    column_sortable_list = [ActiveTest.status, ActiveTest.updated_at]
    column_default_sort = ("updated_at", True)

    column_details_list = [
        ActiveTest.world_id,
        ActiveTest.test_id,
        ActiveTest.status,
        ActiveTest.data_json,
        ActiveTest.updated_at,
    ]


class DraftTestAdmin(ModelView, model=DraftTest):
    name = "Draft Test"
    name_plural = "Draft Tests"
    icon = "fa-solid fa-file-pen"

    can_create = False
    can_edit = False
    can_delete = False

    column_list = [DraftTest.id, DraftTest.world_id, DraftTest.name, DraftTest.created_at]
    column_searchable_list = [DraftTest.name, DraftTest.world_id]
    column_sortable_list = [DraftTest.name, DraftTest.created_at]
    column_default_sort = ("created_at", True)


class ArchivedTestAdmin(ModelView, model=ArchivedTest):
    name = "Archived Test"
    name_plural = "Archived Tests"
    icon = "fa-solid fa-box-archive"

    can_create = False
    can_edit = False
    can_delete = False

    column_list = [
        ArchivedTest.name,
        ArchivedTest.world_id,
        ArchivedTest.outcome,
        ArchivedTest.victories,
        ArchivedTest.completed_at,
    ]
    column_searchable_list = [ArchivedTest.name, ArchivedTest.world_id]
    column_sortable_list = [ArchivedTest.outcome, ArchivedTest.victories, ArchivedTest.completed_at]
    column_default_sort = ("completed_at", True)

    column_details_list = [
        ArchivedTest.id,
        ArchivedTest.world_id,
        ArchivedTest.test_id,
        ArchivedTest.name,
        ArchivedTest.outcome,
        ArchivedTest.victories,
        ArchivedTest.data_json,
        ArchivedTest.completed_at,
    ]

    can_export = True
    export_types = ["csv", "json"]
