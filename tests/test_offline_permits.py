import asyncio

from services.offline_permits import OfflinePermitCreation


class FakeGateway:
    def __init__(self):
        self.created = []

    def create_permit(self, payload):
        self.created.append(payload)
        return {"id": f"permit-{len(self.created)}", **payload}


def test_offline_create_then_sync_on_reconnect(cache, network, notifier):
    gateway = FakeGateway()
    permits = OfflinePermitCreation(cache, network, gateway, notifier)
    try:
        result = asyncio.run(permits.create_permit({"project_id": "P1"}))
        assert result.queued
        assert permits.pending_count == 1
        assert gateway.created == []

        network.set_online(True)
        assert permits.pending_count == 0
        assert gateway.created == [{"project_id": "P1"}]
        assert "1 permit synced" in notifier.of_level("success")
    finally:
        permits.close()


def test_successful_create_clears_draft(cache, network, notifier):
    permits = OfflinePermitCreation(cache, network, FakeGateway(), notifier)
    permits.save_draft({"project_id": "P1", "job_description": "Scaffold inspection"})
    assert permits.load_draft()["job_description"] == "Scaffold inspection"

    asyncio.run(permits.create_permit({"project_id": "P1"}))
    assert permits.load_draft() is None
    permits.close()


def test_discard_and_retry_delegate_to_queue(cache, network, notifier):
    permits = OfflinePermitCreation(cache, network, FakeGateway(), notifier, auto_sync=False)
    local_id = asyncio.run(permits.create_permit({"project_id": "P1"})).local_id
    assert [item.local_id for item in permits.pending_permits()] == [local_id]

    network.set_online(True)
    assert asyncio.run(permits.retry_permit(local_id)) is True
    assert permits.failed_count == 0
    assert permits.discard_permit(local_id) is True
    assert permits.queue.items() == []
