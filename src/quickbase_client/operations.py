"""Static table of QuickBase JSON API operations.

Each entry names the HTTP method, path template and accepted query
parameters of one endpoint; ``build_request`` turns an entry plus call
arguments into ``RequestOptions`` for the executor.
"""

import string
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union
from urllib.parse import quote

from .types import HttpMethod, RequestOptions


@dataclass(frozen=True)
class Operation:
    name: str
    method: HttpMethod
    path: str
    query: tuple[str, ...] = ()
    paginated: bool = False

    @property
    def path_params(self) -> tuple[str, ...]:
        return tuple(f for _, f, _, _ in string.Formatter().parse(self.path) if f)

    @property
    def pages_in_query(self) -> bool:
        return self.method == "GET"


def _ops(*ops: Operation) -> dict[str, Operation]:
    return {op.name: op for op in ops}


OPERATIONS: dict[str, Operation] = _ops(
    # apps
    Operation("createApp", "POST", "/apps"),
    Operation("getApp", "GET", "/apps/{appId}"),
    Operation("updateApp", "POST", "/apps/{appId}"),
    Operation("deleteApp", "DELETE", "/apps/{appId}"),
    Operation("getAppEvents", "GET", "/apps/{appId}/events"),
    Operation("copyApp", "POST", "/apps/{appId}/copy"),
    Operation("getRoles", "GET", "/apps/{appId}/roles"),
    # tables
    Operation("getAppTables", "GET", "/tables", ("appId",)),
    Operation("createTable", "POST", "/tables", ("appId",)),
    Operation("getTable", "GET", "/tables/{tableId}", ("appId",)),
    Operation("updateTable", "POST", "/tables/{tableId}", ("appId",)),
    Operation("deleteTable", "DELETE", "/tables/{tableId}", ("appId",)),
    Operation("getRelationships", "GET", "/tables/{tableId}/relationships", ("skip",), True),
    Operation("createRelationship", "POST", "/tables/{tableId}/relationship"),
    Operation("updateRelationship", "POST", "/tables/{tableId}/relationship/{relationshipId}"),
    Operation("deleteRelationship", "DELETE", "/tables/{tableId}/relationship/{relationshipId}"),
    # reports
    Operation("getTableReports", "GET", "/reports", ("tableId",)),
    Operation("getReport", "GET", "/reports/{reportId}", ("tableId",)),
    Operation("runReport", "POST", "/reports/{reportId}/run", ("tableId", "skip", "top"), True),
    # fields
    Operation("getFields", "GET", "/fields", ("tableId", "includeFieldPerms")),
    Operation("createField", "POST", "/fields", ("tableId",)),
    Operation("deleteFields", "DELETE", "/fields", ("tableId",)),
    Operation("getField", "GET", "/fields/{fieldId}", ("tableId", "includeFieldPerms")),
    Operation("updateField", "POST", "/fields/{fieldId}", ("tableId",)),
    Operation("getFieldsUsage", "GET", "/fields/usage", ("tableId", "skip", "top")),
    Operation("getFieldUsage", "GET", "/fields/usage/{fieldId}", ("tableId",)),
    # formulas
    Operation("runFormula", "POST", "/formula/run"),
    # records
    Operation("upsert", "POST", "/records", paginated=True),
    Operation("deleteRecords", "DELETE", "/records"),
    Operation("runQuery", "POST", "/records/query", paginated=True),
    Operation("recordsModifiedSince", "POST", "/records/modifiedSince"),
    # auth
    Operation("getTempTokenDBID", "GET", "/auth/temporary/{dbid}"),
    Operation("exchangeSsoToken", "POST", "/auth/oauth/token"),
    # user tokens
    Operation("cloneUserToken", "POST", "/usertoken/clone"),
    Operation("transferUserToken", "POST", "/usertoken/transfer"),
    Operation("deactivateUserToken", "POST", "/usertoken/deactivate"),
    Operation("deleteUserToken", "DELETE", "/usertoken"),
    # files
    Operation("downloadFile", "GET", "/files/{tableId}/{recordId}/{fieldId}/{versionNumber}"),
    Operation("deleteFile", "DELETE", "/files/{tableId}/{recordId}/{fieldId}/{versionNumber}"),
    # users
    Operation("getUsers", "POST", "/users", ("accountId",), True),
    Operation("denyUsers", "PUT", "/users/deny", ("accountId",)),
    Operation("denyUsersAndGroups", "PUT", "/users/deny/{shouldDeleteFromGroups}", ("accountId",)),
    Operation("undenyUsers", "PUT", "/users/undeny", ("accountId",)),
    # groups
    Operation("addMembersToGroup", "POST", "/groups/{gid}/members"),
    Operation("removeMembersFromGroup", "DELETE", "/groups/{gid}/members"),
    Operation("addManagersToGroup", "POST", "/groups/{gid}/managers"),
    Operation("removeManagersFromGroup", "DELETE", "/groups/{gid}/managers"),
    Operation("addSubgroupsToGroup", "POST", "/groups/{gid}/subgroups"),
    Operation("removeSubgroupsFromGroup", "DELETE", "/groups/{gid}/subgroups"),
    # audit
    Operation("audit", "POST", "/audit"),
    # analytics
    Operation("platformAnalyticReads", "GET", "/analytics/reads", ("day",)),
    Operation(
        "platformAnalyticEventSummaries", "POST", "/analytics/events/summaries", ("accountId",), True
    ),
    # solutions
    Operation("exportSolution", "GET", "/solutions/{solutionId}"),
    Operation("updateSolution", "PUT", "/solutions/{solutionId}"),
    Operation("createSolution", "POST", "/solutions"),
    Operation("exportSolutionToRecord", "GET", "/solutions/{solutionId}/torecord", ("tableId", "fieldId")),
    Operation(
        "createSolutionFromRecord", "GET", "/solutions/fromrecord", ("tableId", "fieldId", "recordId")
    ),
    Operation(
        "updateSolutionFromRecord",
        "GET",
        "/solutions/{solutionId}/fromrecord",
        ("tableId", "fieldId", "recordId"),
    ),
    Operation("changesetSolution", "PUT", "/solutions/{solutionId}/changeset"),
    Operation(
        "changesetSolutionFromRecord",
        "GET",
        "/solutions/{solutionId}/changeset/fromrecord",
        ("tableId", "fieldId", "recordId"),
    ),
    Operation("getSolutionPublic", "GET", "/solutions/{solutionId}/resources"),
    # document templates
    Operation(
        "generateDocument",
        "GET",
        "/docTemplates/{templateId}/generate",
        (
            "tableId",
            "recordId",
            "filename",
            "format",
            "margin",
            "unit",
            "pageSize",
            "orientation",
            "realm",
        ),
    ),
    # trustees
    Operation("getTrustees", "GET", "/app/{appId}/trustees"),
    Operation("addTrustees", "POST", "/app/{appId}/trustees"),
    Operation("removeTrustees", "DELETE", "/app/{appId}/trustees"),
    Operation("updateTrustees", "PATCH", "/app/{appId}/trustees"),
)


def get_operation(name: str) -> Operation:
    try:
        return OPERATIONS[name]
    except KeyError:
        raise KeyError(f"Unknown operation '{name}'") from None


def build_request(
    op: Union[Operation, str],
    params: Union[Mapping[str, Any], None] = None,
    body: Any = None,
) -> RequestOptions:
    """Fill in ``op``'s path template and query string from ``params``."""
    if isinstance(op, str):
        op = get_operation(op)
    params = dict(params or {})

    path_values = {}
    for name in op.path_params:
        value = params.pop(name, None)
        if value is None:
            raise TypeError(f"{op.name}() missing required path parameter '{name}'")
        if isinstance(value, bool):
            value = "true" if value else "false"
        path_values[name] = quote(str(value), safe="")

    query = {}
    for name in op.query:
        value = params.pop(name, None)
        if value is not None:
            query[name] = value
    if params:
        raise TypeError(f"{op.name}() got unexpected parameters: {', '.join(sorted(params))}")

    return RequestOptions(
        method=op.method,
        path=op.path.format(**path_values),
        body=body,
        query=query or None,
    )
