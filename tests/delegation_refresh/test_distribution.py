"""Tests for the distribution policy."""

from unittest.mock import MagicMock

import pytest

from core.errors import DistributionError
from delegation_refresh.broadcast import (
    BroadcastReport,
    NodeDeliveryResult,
    apply_credential_payload,
)
from delegation_refresh.distribution import DistributionMode, DistributionPolicy
from delegation_refresh.schemas.credentials import (
    CredentialBroadcastMessage,
    CredentialBundle,
)


class TestBeforeFormation:
    def test_applies_locally_without_broadcast(
        self, distribution, broadcast, node_contexts, local_context
    ):
        """Unformed cluster: local install only, channel never invoked."""
        result = distribution.distribute(CredentialBundle(b"B1"))

        assert result.mode is DistributionMode.LOCAL
        assert result.report is None
        assert local_context.current() == CredentialBundle(b"B1")
        assert broadcast.payloads == []
        assert node_contexts["node-2"].current() is None
        assert node_contexts["node-3"].current() is None


class TestPathsAgree:
    def test_empty_bundle_local_and_broadcast(
        self, distribution, membership, node_contexts, local_context
    ):
        """A bundle accepted locally is also accepted by the broadcast path."""
        empty = CredentialBundle(b"")

        assert distribution.distribute(empty).mode is DistributionMode.LOCAL
        assert local_context.current() == empty

        membership.lock("node-1")
        result = distribution.distribute(empty)

        assert result.mode is DistributionMode.BROADCAST
        assert result.report.failed_nodes == []
        for context in node_contexts.values():
            assert context.current() == empty


class TestAfterFormation:
    def test_broadcasts_to_every_member(
        self, distribution, membership, broadcast, node_contexts
    ):
        """Formed cluster: every member applies the bundle exactly once."""
        membership.lock("node-1")

        result = distribution.distribute(CredentialBundle(b"B2"))

        assert result.mode is DistributionMode.BROADCAST
        assert len(broadcast.payloads) == 1
        for context in node_contexts.values():
            assert context.current() == CredentialBundle(b"B2")
            assert context.update_count == 1

    def test_payload_carries_origin_and_exact_bytes(
        self, distribution, membership, broadcast
    ):
        membership.lock("node-1")
        bundle = CredentialBundle(b"\x00\x01binary\xff")

        distribution.distribute(bundle)

        message = CredentialBroadcastMessage.from_bytes(broadcast.payloads[0])
        assert message.origin_node == "node-1"
        assert message.to_bundle() == bundle

    def test_uses_receiver_apply_function(self, membership, local_context):
        channel = MagicMock()
        channel.run_on_all_nodes.return_value = BroadcastReport(
            results=[NodeDeliveryResult("node-1", True)]
        )
        membership.lock("node-1")

        DistributionPolicy(membership, channel, local_context).distribute(
            CredentialBundle(b"B2")
        )

        payload, apply_fn = channel.run_on_all_nodes.call_args.args
        assert isinstance(payload, bytes)
        assert apply_fn is apply_credential_payload

    def test_partial_failure_is_not_raised(
        self, distribution, membership, node_contexts, caplog
    ):
        """Unreachable members are logged; the others still get the bundle."""
        membership.lock("node-1")
        membership.add_member("node-4")  # no registered context

        with caplog.at_level("WARNING"):
            result = distribution.distribute(CredentialBundle(b"B2"))

        assert result.report.failed_nodes == ["node-4"]
        assert node_contexts["node-2"].current() == CredentialBundle(b"B2")
        assert "partially failed" in caplog.text

    def test_complete_failure_raises(self, membership, local_context):
        channel = MagicMock()
        channel.run_on_all_nodes.return_value = BroadcastReport(
            results=[
                NodeDeliveryResult("node-1", False, "x"),
                NodeDeliveryResult("node-2", False, "y"),
            ]
        )
        membership.lock("node-1")
        policy = DistributionPolicy(membership, channel, local_context)

        with pytest.raises(DistributionError) as exc_info:
            policy.distribute(CredentialBundle(b"B2"))

        assert exc_info.value.report.failed_nodes == ["node-1", "node-2"]

    def test_no_members_raises(self, membership, local_context):
        """An empty member list delivers nothing and is not a success."""
        channel = MagicMock()
        channel.run_on_all_nodes.return_value = BroadcastReport()
        membership.lock("node-1")
        policy = DistributionPolicy(membership, channel, local_context)

        with pytest.raises(DistributionError) as exc_info:
            policy.distribute(CredentialBundle(b"B2"))

        assert exc_info.value.report.nodes_total == 0

    def test_membership_read_on_every_call(
        self, distribution, membership, broadcast, local_context
    ):
        distribution.distribute(CredentialBundle(b"B1"))
        membership.lock("node-1")
        distribution.distribute(CredentialBundle(b"B2"))
        membership.unlock()
        distribution.distribute(CredentialBundle(b"B3"))

        assert len(broadcast.payloads) == 1
        assert local_context.current() == CredentialBundle(b"B3")
