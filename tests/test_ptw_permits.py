import json

import pytest
from postgrest.exceptions import APIError

from services.ptw_permits import PermitGateway, PermitSubmissionError


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, table):
        self.table = table
        self.action = None
        self.values = None
        self.filters = []

    def insert(self, values):
        self.action, self.values = "insert", values
        return self

    def update(self, values):
        self.action, self.values = "update", values
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def execute(self):
        return self.table.client.execute(self)


class FakeTable:
    def __init__(self, client, name):
        self.client = client
        self.name = name


class FakeFunctions:
    def __init__(self, client):
        self.client = client

    def invoke(self, name, invoke_options=None):
        self.client.invocations.append((name, invoke_options))
        if isinstance(self.client.validation, Exception):
            raise self.client.validation
        return self.client.validation


class FakeClient:
    def __init__(self, validation=None):
        self.validation = {"is_valid": True} if validation is None else validation
        self.invocations = []
        self.queries = []
        self.insert_error = None
        self.update_error = None
        self.functions = FakeFunctions(self)

    def table(self, name):
        return FakeQuery(FakeTable(self, name))

    def execute(self, query):
        self.queries.append(query)
        if query.action == "insert":
            if self.insert_error:
                raise self.insert_error
            return FakeResponse([{"id": "permit-1", **query.values}])
        if self.update_error:
            raise self.update_error
        return FakeResponse([])


PAYLOAD = {
    "project_id": "P1",
    "type_id": "hot-work",
    "planned_start_time": "2024-05-01T08:00:00Z",
    "planned_end_time": "2024-05-01T16:00:00Z",
    "site_id": "S1",
    "job_description": "Welding on tank 4",
}


def make_gateway(client):
    return PermitGateway(client, tenant_id="tenant-1", user_id="user-1")


def test_create_permit_inserts_with_session_context():
    client = FakeClient()
    created = make_gateway(client).create_permit(dict(PAYLOAD))

    assert created["id"] == "permit-1"
    insert = client.queries[0]
    assert insert.table.name == "ptw_permits"
    assert insert.values["tenant_id"] == "tenant-1"
    assert insert.values["applicant_id"] == "user-1"
    assert insert.values["created_by"] == "user-1"
    assert insert.values["job_description"] == "Welding on tank 4"
    assert len(client.queries) == 1


def test_validation_request_body():
    client = FakeClient()
    make_gateway(client).create_permit(dict(PAYLOAD, worker_ids=["w1"]))

    name, options = client.invocations[0]
    assert name == "validate-permit-request"
    assert options["body"]["worker_ids"] == ["w1"]
    assert options["body"]["site_id"] == "S1"


def test_worker_assignments_stored_in_work_scope():
    client = FakeClient()
    created = make_gateway(client).create_permit(
        dict(PAYLOAD, worker_ids=["w1", "w2"], permit_holder_id="w1")
    )

    update = client.queries[1]
    assert update.action == "update"
    assert update.filters == [("id", "permit-1")]
    assert json.loads(update.values["work_scope"]) == {"worker_ids": ["w1", "w2"], "permit_holder_id": "w1"}
    assert json.loads(created["work_scope"])["worker_ids"] == ["w1", "w2"]


def test_worker_assignment_failure_keeps_created_permit():
    client = FakeClient()
    client.update_error = APIError({"message": "permission denied", "code": "42501"})
    created = make_gateway(client).create_permit(dict(PAYLOAD, worker_ids=["w1"]))
    assert created["id"] == "permit-1"


def test_missing_required_fields():
    client = FakeClient()
    payload = dict(PAYLOAD)
    del payload["type_id"]
    with pytest.raises(PermitSubmissionError, match="type_id"):
        make_gateway(client).create_permit(payload)
    assert client.invocations == []


def test_validation_errors_are_joined():
    client = FakeClient(
        {"is_valid": False, "errors": [{"message": "Worker w1 not inducted"}, {"message": "Site closed"}]}
    )
    with pytest.raises(PermitSubmissionError, match="Worker w1 not inducted; Site closed"):
        make_gateway(client).create_permit(dict(PAYLOAD))
    assert client.queries == []


def test_validation_json_bytes_are_decoded():
    client = FakeClient(b'{"is_valid": true}')
    assert make_gateway(client).create_permit(dict(PAYLOAD))["id"] == "permit-1"


def test_validation_function_failure():
    client = FakeClient(RuntimeError("edge function unavailable"))
    with pytest.raises(PermitSubmissionError, match="Failed to validate permit request"):
        make_gateway(client).create_permit(dict(PAYLOAD))


def test_insert_error_message_is_surfaced():
    client = FakeClient()
    client.insert_error = APIError({"message": "new row violates row-level security policy", "code": "42501"})
    with pytest.raises(PermitSubmissionError, match="row-level security"):
        make_gateway(client).create_permit(dict(PAYLOAD))


def test_missing_tenant_is_rejected():
    gateway = PermitGateway(FakeClient(), tenant_id="", user_id="user-1")
    with pytest.raises(PermitSubmissionError, match="No tenant"):
        gateway.create_permit(dict(PAYLOAD))
