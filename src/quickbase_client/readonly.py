"""Read-only mode: decide whether a request would mutate state before it is sent."""

import re

from .errors import ReadOnlyError

# Requests that write even though the method alone would not say so,
# plus the core record/app writes. A match blocks unconditionally.
BLOCKED = (
    ("POST", re.compile(r"^/records$")),
    ("DELETE", re.compile(r"^/records$")),
    ("POST", re.compile(r"^/apps$")),
    ("DELETE", re.compile(r"^/apps/[^/]+$")),
    # exporting a solution into a record writes that record
    ("GET", re.compile(r"^/solutions/[^/]+/torecord$")),
    ("GET", re.compile(r"^/solutions/fromrecord$")),
    ("GET", re.compile(r"^/solutions/[^/]+/fromrecord$")),
    ("GET", re.compile(r"^/solutions/[^/]+/changeset/fromrecord$")),
    # generating a document can attach it to a record
    ("GET", re.compile(r"^/docTemplates/[^/]+/generate$")),
)

# POST endpoints that only read; the filter body just doesn't fit a query string.
READ_ONLY_POSTS = (
    re.compile(r"^/records/query$"),
    re.compile(r"^/records/modifiedSince$"),
    re.compile(r"^/reports/[^/]+/run$"),
    re.compile(r"^/formula/run$"),
    re.compile(r"^/audit$"),
    re.compile(r"^/users$"),
    re.compile(r"^/analytics/events/summaries$"),
    re.compile(r"^/auth/oauth/token$"),
)

XML_WRITE_ACTIONS = frozenset(
    {
        # users and roles
        "API_AddUserToRole",
        "API_RemoveUserFromRole",
        "API_ChangeUserRole",
        "API_ProvisionUser",
        "API_SendInvitation",
        "API_ChangeManager",
        "API_ChangeRecordOwner",
        # groups
        "API_CreateGroup",
        "API_DeleteGroup",
        "API_AddUserToGroup",
        "API_RemoveUserFromGroup",
        "API_AddGroupToRole",
        "API_RemoveGroupFromRole",
        "API_CopyGroup",
        "API_ChangeGroupInfo",
        "API_AddSubgroup",
        "API_RemoveSubgroup",
        # app variables and pages
        "API_SetDBVar",
        "API_AddReplaceDBPage",
        # fields
        "API_FieldAddChoices",
        "API_FieldRemoveChoices",
        "API_SetKeyField",
        # webhooks
        "API_Webhooks_Create",
        "API_Webhooks_Edit",
        "API_Webhooks_Delete",
        "API_Webhooks_Activate",
        "API_Webhooks_Deactivate",
        "API_Webhooks_Copy",
        # records
        "API_ImportFromCSV",
        "API_RunImport",
        "API_CopyMasterDetail",
        "API_PurgeRecords",
        "API_AddRecord",
        "API_EditRecord",
        "API_DeleteRecord",
        # session
        "API_SignOut",
    }
)


def normalize_path(path: str) -> str:
    path = path.split("?", 1)[0].split("#", 1)[0]
    if path.startswith("/v1/"):
        path = path[3:]
    if len(path) > 1:
        path = path.rstrip("/")
    return path or "/"


def is_read_only_blocked(method: str, path: str) -> bool:
    method = method.upper()
    path = normalize_path(path)
    for blocked_method, pattern in BLOCKED:
        if method == blocked_method and pattern.match(path):
            return True
    if method == "GET":
        return False
    if method == "POST":
        return not any(p.match(path) for p in READ_ONLY_POSTS)
    return True


def check_read_only(method: str, path: str, read_only: bool) -> None:
    if read_only and is_read_only_blocked(method, path):
        raise ReadOnlyError(method.upper(), path)


def is_xml_write_action(action: str) -> bool:
    return action in XML_WRITE_ACTIONS


def check_xml_action(action: str, realm: str, read_only: bool) -> None:
    # API_Authenticate is not in the write set, so ticket auth always passes
    if read_only and is_xml_write_action(action):
        raise ReadOnlyError("POST", f"/db/{realm}", action)

