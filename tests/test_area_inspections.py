import pytest
from postgrest.exceptions import APIError

from services.area_inspections import AreaInspectionGateway, AreaSyncError


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.action = "select"
        self.values = None
        self.filters = []
        self.order_by = None
        self.single_mode = None

    def select(self, columns):
        self.action = "select"
        return self

    def insert(self, values):
        self.action, self.values = "insert", dict(values)
        return self

    def update(self, values):
        self.action, self.values = "update", dict(values)
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def is_(self, column, value):
        self.filters.append((column, None if value == "null" else value))
        return self

    def order(self, column):
        self.order_by = column
        return self

    def single(self):
        self.single_mode = "single"
        return self

    def maybe_single(self):
        self.single_mode = "maybe"
        return self

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self):
        self.db.log.append((self.table, self.action))
        if self.table in self.db.fail_tables and self.action in ("insert", "update"):
            raise APIError({"message": f"write to {self.table} denied", "code": "42501"})
        rows = self.db.tables.setdefault(self.table, [])
        if self.action == "insert":
            row = {"id": f"{self.table}-{len(rows) + 1}", **self.values}
            rows.append(row)
            return FakeResponse([dict(row)])
        matched = [row for row in rows if self._matches(row)]
        if self.action == "update":
            for row in matched:
                row.update(self.values)
            return FakeResponse([dict(row) for row in matched])
        if self.order_by:
            matched.sort(key=lambda row: row[self.order_by])
        if self.single_mode == "maybe":
            return FakeResponse(dict(matched[0])) if matched else None
        if self.single_mode == "single":
            if not matched:
                raise APIError({"message": "JSON object requested, multiple (or no) rows returned"})
            return FakeResponse(dict(matched[0]))
        return FakeResponse([dict(row) for row in matched])


class FakeClient:
    def __init__(self):
        self.tables = {}
        self.log = []
        self.fail_tables = set()

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture()
def client():
    return FakeClient()


@pytest.fixture()
def gateway(client):
    return AreaInspectionGateway(client, tenant_id="tenant-1", user_id="user-1")


RESPONSE = {
    "session_id": "S1",
    "template_item_id": "item-1",
    "result": "fail",
    "notes": "Blocked fire exit",
    "responded_by": "user-1",
    "responded_at": "2024-05-01T08:00:00Z",
}


def test_first_response_is_inserted_with_tenant(gateway, client):
    saved = gateway.save_response(dict(RESPONSE))
    rows = client.tables["area_inspection_responses"]
    assert len(rows) == 1
    assert rows[0]["tenant_id"] == "tenant-1"
    assert rows[0]["photo_paths"] == []
    assert saved["id"] == rows[0]["id"]


def test_second_response_for_same_item_updates(gateway, client):
    first = gateway.save_response(dict(RESPONSE))
    second = gateway.save_response(dict(RESPONSE, result="pass", notes="Cleared"))

    rows = client.tables["area_inspection_responses"]
    assert len(rows) == 1
    assert second["id"] == first["id"]
    assert rows[0]["result"] == "pass"
    assert rows[0]["notes"] == "Cleared"


def test_response_requires_item_reference(gateway):
    with pytest.raises(AreaSyncError):
        gateway.save_response({"session_id": "S1"})


def test_finding_resolves_response_by_template_item(gateway, client):
    response = gateway.save_response(dict(RESPONSE))
    finding = gateway.create_finding(
        {
            "session_id": "S1",
            "template_item_id": "item-1",
            "classification": "observation",
            "risk_level": "medium",
            "status": "open",
            "created_by": "user-1",
        }
    )
    assert finding["response_id"] == response["id"]
    assert finding["tenant_id"] == "tenant-1"
    assert len(client.tables["area_inspection_findings"]) == 1


def test_finding_is_created_once_per_response(gateway, client):
    gateway.save_response(dict(RESPONSE))
    payload = {"session_id": "S1", "template_item_id": "item-1", "status": "open"}
    first = gateway.create_finding(dict(payload))
    second = gateway.create_finding(dict(payload))
    assert second["id"] == first["id"]
    assert len(client.tables["area_inspection_findings"]) == 1


def test_finding_before_response_is_synced_fails(gateway):
    with pytest.raises(AreaSyncError, match="Could not find synced response"):
        gateway.create_finding({"session_id": "S1", "template_item_id": "item-9"})


def test_write_errors_are_wrapped(gateway, client):
    client.fail_tables.add("area_inspection_responses")
    with pytest.raises(AreaSyncError, match="denied"):
        gateway.save_response(dict(RESPONSE))


def test_fetch_session_and_ordered_template_items(gateway, client):
    client.tables["inspection_sessions"] = [{"id": "S1", "template_id": "T1", "status": "in_progress"}]
    client.tables["inspection_template_items"] = [
        {"id": "b", "template_id": "T1", "sort_order": 2, "deleted_at": None},
        {"id": "a", "template_id": "T1", "sort_order": 1, "deleted_at": None},
        {"id": "gone", "template_id": "T1", "sort_order": 0, "deleted_at": "2024-01-01"},
    ]
    assert gateway.fetch_session("S1")["template_id"] == "T1"
    assert [item["id"] for item in gateway.fetch_template_items("T1")] == ["a", "b"]


def test_fetch_missing_session(gateway):
    with pytest.raises(AreaSyncError):
        gateway.fetch_session("nope")
