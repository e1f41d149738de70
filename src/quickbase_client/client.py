import logging
from dataclasses import replace
from typing import Any, Union

from .adapters import coerce_transport
from .auth import AuthContext, AuthStrategy, create_auth_strategy
from .config import resolve_config
from .env import load_config_from_env
from .executor import RequestExecutor
from .operations import Operation, build_request, get_operation
from .pagination import PaginatedRequest, apply_cursor_to_body, apply_cursor_to_query
from .readonly import check_xml_action
from .types import AuthDescriptor, QuickbaseConfig, RequestOptions, ResolvedConfig


class QuickbaseClient:
    """Async client for the QuickBase JSON API.

    One method per API operation; all of them share a single executor, so
    auth, retries, throttling, schema aliases and read-only mode apply
    uniformly. Operations that page (``run_query``, ``run_report``, ...)
    return a ``PaginatedRequest``; await it directly or call ``.all()``,
    ``.paginate(limit=...)`` or ``.no_paginate()``.

    Use as ``async with QuickbaseClient(config) as qb:`` or call ``aclose()``.
    """

    def __init__(self, config: QuickbaseConfig, *, throttle=None):
        self._logger = logging.getLogger("quickbase_client")
        if config.log_level is not None:
            self._logger.setLevel(config.log_level)
        self._config: ResolvedConfig = resolve_config(config)
        self._transport = coerce_transport(config.transport, self._config.timeout)
        context = AuthContext(
            realm=self._config.realm,
            base_url=self._config.base_url,
            transport=self._transport,
            realm_hostname=self._config.realm_hostname,
            logger=self._logger,
        )
        self.auth_strategy: AuthStrategy = create_auth_strategy(self._config.auth, context)
        self._executor = RequestExecutor(
            self._config, self.auth_strategy, self._transport, throttle=throttle, logger=self._logger
        )

    @classmethod
    def from_env(cls, prefix: str = "QB_", env_path: Union[str, None] = None, **overrides):
        return cls(load_config_from_env(prefix=prefix, env_path=env_path, **overrides))

    def get_config(self) -> ResolvedConfig:
        return self._config

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    async def aclose(self):
        await self._transport.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    # ---------- generic plumbing ----------
    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        query: Union[dict, None] = None,
        dbid: Union[str, None] = None,
        headers: Union[dict, None] = None,
    ) -> Any:
        """Call any endpoint directly, still going through auth/retry/read-only."""
        options = RequestOptions(
            method=method.upper(), path=path, body=body, query=query, dbid=dbid, headers=headers
        )
        return await self._executor.execute(options)

    def check_xml_action(self, action: str) -> None:
        """Raise ReadOnlyError if a legacy XML action would write while read-only."""
        check_xml_action(action, self._config.realm, self._config.read_only)

    def _options(self, op: Operation, params: dict, body: Any) -> RequestOptions:
        schema = self._config.schema
        if schema is not None and params.get("tableId"):
            params = {**params, "tableId": schema.resolve_table_alias(params["tableId"])}
        return build_request(op, params, body)

    async def _call(self, name: str, params: Union[dict, None] = None, body: Any = None) -> Any:
        op = get_operation(name)
        return await self._executor.execute(self._options(op, params or {}, body), name)

    def _paginated(
        self, name: str, params: Union[dict, None] = None, body: Any = None
    ) -> PaginatedRequest:
        op = get_operation(name)
        first = self._options(op, params or {}, body)

        async def fetch_page(cursor):
            options = first
            if cursor is not None:
                if op.pages_in_query:
                    options = replace(first, query=apply_cursor_to_query(first.query, cursor))
                else:
                    options = replace(first, body=apply_cursor_to_body(first.body, cursor))
            return await self._executor.execute(options, name)

        return PaginatedRequest(fetch_page, self._config.auto_paginate, self._logger)

    def _invoke(self, name: str, params: Union[dict, None] = None, body: Any = None):
        """Run an operation by name; paginated ones come back as a ``PaginatedRequest``."""
        if get_operation(name).paginated:
            return self._paginated(name, params, body)
        return self._call(name, params, body)

    # ---------- apps ----------
    def create_app(self, body: dict):
        return self._invoke("createApp", body=body)

    def get_app(self, app_id: str):
        return self._invoke("getApp", {"appId": app_id})

    def update_app(self, app_id: str, body: Union[dict, None] = None):
        return self._invoke("updateApp", {"appId": app_id}, body)

    def delete_app(self, app_id: str, body: dict):
        return self._invoke("deleteApp", {"appId": app_id}, body)

    def get_app_events(self, app_id: str):
        return self._invoke("getAppEvents", {"appId": app_id})

    def copy_app(self, app_id: str, body: dict):
        return self._invoke("copyApp", {"appId": app_id}, body)

    def get_roles(self, app_id: str):
        return self._invoke("getRoles", {"appId": app_id})

    # ---------- tables ----------
    def get_app_tables(self, app_id: str):
        return self._invoke("getAppTables", {"appId": app_id})

    def create_table(self, app_id: str, body: dict):
        return self._invoke("createTable", {"appId": app_id}, body)

    def get_table(self, table_id: str, app_id: str):
        return self._invoke("getTable", {"tableId": table_id, "appId": app_id})

    def update_table(self, table_id: str, app_id: str, body: Union[dict, None] = None):
        return self._invoke("updateTable", {"tableId": table_id, "appId": app_id}, body)

    def delete_table(self, table_id: str, app_id: str):
        return self._invoke("deleteTable", {"tableId": table_id, "appId": app_id})

    def get_relationships(self, table_id: str, *, skip: Union[int, None] = None) -> PaginatedRequest:
        return self._invoke("getRelationships", {"tableId": table_id, "skip": skip})

    def create_relationship(self, table_id: str, body: dict):
        return self._invoke("createRelationship", {"tableId": table_id}, body)

    def update_relationship(
        self, table_id: str, relationship_id: int, body: Union[dict, None] = None
    ):
        params = {"tableId": table_id, "relationshipId": relationship_id}
        return self._invoke("updateRelationship", params, body)

    def delete_relationship(self, table_id: str, relationship_id: int):
        params = {"tableId": table_id, "relationshipId": relationship_id}
        return self._invoke("deleteRelationship", params)

    # ---------- reports ----------
    def get_table_reports(self, table_id: str):
        return self._invoke("getTableReports", {"tableId": table_id})

    def get_report(self, report_id: str, table_id: str):
        return self._invoke("getReport", {"reportId": report_id, "tableId": table_id})

    def run_report(
        self,
        report_id: str,
        table_id: str,
        body: Union[dict, None] = None,
        *,
        skip: Union[int, None] = None,
        top: Union[int, None] = None,
    ) -> PaginatedRequest:
        params = {"reportId": report_id, "tableId": table_id, "skip": skip, "top": top}
        return self._invoke("runReport", params, body)

    # ---------- fields ----------
    def get_fields(self, table_id: str, *, include_field_perms: Union[bool, None] = None):
        params = {"tableId": table_id, "includeFieldPerms": include_field_perms}
        return self._invoke("getFields", params)

    def create_field(self, table_id: str, body: dict):
        return self._invoke("createField", {"tableId": table_id}, body)

    def delete_fields(self, table_id: str, body: dict):
        return self._invoke("deleteFields", {"tableId": table_id}, body)

    def get_field(
        self, field_id: int, table_id: str, *, include_field_perms: Union[bool, None] = None
    ):
        params = {"fieldId": field_id, "tableId": table_id, "includeFieldPerms": include_field_perms}
        return self._invoke("getField", params)

    def update_field(self, field_id: int, table_id: str, body: Union[dict, None] = None):
        return self._invoke("updateField", {"fieldId": field_id, "tableId": table_id}, body)

    def get_fields_usage(
        self, table_id: str, *, skip: Union[int, None] = None, top: Union[int, None] = None
    ):
        return self._invoke("getFieldsUsage", {"tableId": table_id, "skip": skip, "top": top})

    def get_field_usage(self, field_id: int, table_id: str):
        return self._invoke("getFieldUsage", {"fieldId": field_id, "tableId": table_id})

    # ---------- formulas ----------
    def run_formula(self, body: dict):
        return self._invoke("runFormula", body=body)

    # ---------- records ----------
    def upsert(self, body: dict) -> PaginatedRequest:
        return self._invoke("upsert", body=body)

    def delete_records(self, body: dict):
        return self._invoke("deleteRecords", body=body)

    def run_query(self, body: dict) -> PaginatedRequest:
        return self._invoke("runQuery", body=body)

    def records_modified_since(self, body: dict):
        return self._invoke("recordsModifiedSince", body=body)

    # ---------- auth ----------
    def get_temp_token_dbid(self, dbid: str):
        return self._invoke("getTempTokenDBID", {"dbid": dbid})

    def exchange_sso_token(self, body: dict):
        return self._invoke("exchangeSsoToken", body=body)

    # ---------- user tokens ----------
    def clone_user_token(self, body: Union[dict, None] = None):
        return self._invoke("cloneUserToken", body=body)

    def transfer_user_token(self, body: Union[dict, None] = None):
        return self._invoke("transferUserToken", body=body)

    def deactivate_user_token(self):
        return self._invoke("deactivateUserToken")

    def delete_user_token(self):
        return self._invoke("deleteUserToken")

    # ---------- files ----------
    def download_file(self, table_id: str, record_id: int, field_id: int, version_number: int):
        params = {
            "tableId": table_id,
            "recordId": record_id,
            "fieldId": field_id,
            "versionNumber": version_number,
        }
        return self._invoke("downloadFile", params)

    def delete_file(self, table_id: str, record_id: int, field_id: int, version_number: int):
        params = {
            "tableId": table_id,
            "recordId": record_id,
            "fieldId": field_id,
            "versionNumber": version_number,
        }
        return self._invoke("deleteFile", params)

    # ---------- users ----------
    def get_users(
        self, body: Union[dict, None] = None, *, account_id: Union[str, None] = None
    ) -> PaginatedRequest:
        return self._invoke("getUsers", {"accountId": account_id}, body)

    def deny_users(self, body: list, *, account_id: Union[str, None] = None):
        return self._invoke("denyUsers", {"accountId": account_id}, body)

    def deny_users_and_groups(
        self, should_delete_from_groups: bool, body: list, *, account_id: Union[str, None] = None
    ):
        params = {"shouldDeleteFromGroups": should_delete_from_groups, "accountId": account_id}
        return self._invoke("denyUsersAndGroups", params, body)

    def undeny_users(self, body: list, *, account_id: Union[str, None] = None):
        return self._invoke("undenyUsers", {"accountId": account_id}, body)

    # ---------- groups ----------
    def add_members_to_group(self, gid: int, body: list):
        return self._invoke("addMembersToGroup", {"gid": gid}, body)

    def remove_members_from_group(self, gid: int, body: list):
        return self._invoke("removeMembersFromGroup", {"gid": gid}, body)

    def add_managers_to_group(self, gid: int, body: list):
        return self._invoke("addManagersToGroup", {"gid": gid}, body)

    def remove_managers_from_group(self, gid: int, body: list):
        return self._invoke("removeManagersFromGroup", {"gid": gid}, body)

    def add_subgroups_to_group(self, gid: int, body: list):
        return self._invoke("addSubgroupsToGroup", {"gid": gid}, body)

    def remove_subgroups_from_group(self, gid: int, body: list):
        return self._invoke("removeSubgroupsFromGroup", {"gid": gid}, body)

    # ---------- audit & analytics ----------
    def audit(self, body: dict):
        return self._invoke("audit", body=body)

    def platform_analytic_reads(self, *, day: Union[str, None] = None):
        return self._invoke("platformAnalyticReads", {"day": day})

    def platform_analytic_event_summaries(
        self, body: dict, *, account_id: Union[str, None] = None
    ) -> PaginatedRequest:
        return self._invoke("platformAnalyticEventSummaries", {"accountId": account_id}, body)

    # ---------- solutions ----------
    def export_solution(self, solution_id: str):
        return self._invoke("exportSolution", {"solutionId": solution_id})

    def update_solution(self, solution_id: str, body: Any = None):
        return self._invoke("updateSolution", {"solutionId": solution_id}, body)

    def create_solution(self, body: Any):
        return self._invoke("createSolution", body=body)

    def export_solution_to_record(self, solution_id: str, table_id: str, field_id: int):
        params = {"solutionId": solution_id, "tableId": table_id, "fieldId": field_id}
        return self._invoke("exportSolutionToRecord", params)

    def create_solution_from_record(self, table_id: str, field_id: int, record_id: int):
        params = {"tableId": table_id, "fieldId": field_id, "recordId": record_id}
        return self._invoke("createSolutionFromRecord", params)

    def update_solution_from_record(
        self, solution_id: str, table_id: str, field_id: int, record_id: int
    ):
        params = {
            "solutionId": solution_id,
            "tableId": table_id,
            "fieldId": field_id,
            "recordId": record_id,
        }
        return self._invoke("updateSolutionFromRecord", params)

    def changeset_solution(self, solution_id: str, body: Any = None):
        return self._invoke("changesetSolution", {"solutionId": solution_id}, body)

    def changeset_solution_from_record(
        self, solution_id: str, table_id: str, field_id: int, record_id: int
    ):
        params = {
            "solutionId": solution_id,
            "tableId": table_id,
            "fieldId": field_id,
            "recordId": record_id,
        }
        return self._invoke("changesetSolutionFromRecord", params)

    def get_solution_public(self, solution_id: str):
        return self._invoke("getSolutionPublic", {"solutionId": solution_id})

    # ---------- document templates ----------
    def generate_document(self, template_id: int, table_id: str, **options):
        """Render a document template.

        ``options`` are passed as query parameters: ``recordId``, ``filename``,
        ``format``, ``margin``, ``unit``, ``pageSize``, ``orientation``, ``realm``.
        """
        params = {"templateId": template_id, "tableId": table_id, **options}
        return self._invoke("generateDocument", params)

    # ---------- trustees ----------
    def get_trustees(self, app_id: str):
        return self._invoke("getTrustees", {"appId": app_id})

    def add_trustees(self, app_id: str, body: list):
        return self._invoke("addTrustees", {"appId": app_id}, body)

    def remove_trustees(self, app_id: str, body: list):
        return self._invoke("removeTrustees", {"appId": app_id}, body)

    def update_trustees(self, app_id: str, body: list):
        return self._invoke("updateTrustees", {"appId": app_id}, body)


def create_client(realm: str, auth: AuthDescriptor, **kwargs) -> QuickbaseClient:
    """Shorthand for ``QuickbaseClient(QuickbaseConfig(realm=realm, auth=auth, **kwargs))``."""
    return QuickbaseClient(QuickbaseConfig(realm=realm, auth=auth, **kwargs))
