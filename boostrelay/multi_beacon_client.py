"""Client that spreads beacon node requests over several beacon nodes."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Protocol, TypeVar

from .beacon_instance import (
    BlockResponse,
    ForkScheduleResponse,
    GenesisResponse,
    ProposerDutiesResponse,
    RandaoResponse,
    SpecResponse,
    SyncStatus,
    ValidatorResponseEntry,
    WithdrawalsResponse,
)
from .common import RelayError

T = TypeVar("T")

_WITHDRAWALS_BEFORE_CAPELLA = "Withdrawals not enabled before capella"


class BeaconNodeSyncingError(RelayError):
    """No beacon node is synced, or none is reachable."""

    def __init__(self, message: str = "beacon node is syncing or unavailable") -> None:
        super().__init__(message)


class BeaconNodesUnavailableError(RelayError):
    """Every beacon node answered with an error."""

    def __init__(self, message: str = "all beacon nodes responded with error") -> None:
        super().__init__(message)


class WithdrawalsBeforeCapellaError(RelayError):
    """Withdrawals were asked for before the capella fork."""

    def __init__(self, message: str = "withdrawals are not supported before capella") -> None:
        super().__init__(message)


class BeaconBlock202Error(RelayError):
    """The block failed validation but was still broadcast."""

    def __init__(
        self,
        message: str = "beacon block failed validation but was still broadcast (202)",
    ) -> None:
        super().__init__(message)


class PublishBlockError(RelayError):
    """No beacon node accepted the block; carries the last status code and error."""

    def __init__(self, status_code: int, last_error: BaseException | None) -> None:
        super().__init__(f"last error: {last_error}")
        self.status_code = status_code
        self.last_error = last_error


class BeaconInstance(Protocol):
    """What the multi-node client needs from a single beacon node."""

    @property
    def uri(self) -> str: ...

    def sync_status(self) -> SyncStatus: ...

    def current_slot(self) -> int: ...

    def subscribe_to_head_events(self, queue: Any) -> None: ...

    def subscribe_to_payload_attributes_events(self, queue: Any) -> None: ...

    def get_state_validators(self, state_id: str) -> dict[str, ValidatorResponseEntry]: ...

    def get_proposer_duties(self, epoch: int) -> ProposerDutiesResponse: ...

    def publish_block(self, block: Any) -> int: ...

    def get_genesis(self) -> GenesisResponse: ...

    def get_spec(self) -> SpecResponse: ...

    def get_fork_schedule(self) -> ForkScheduleResponse: ...

    def get_block(self, block_id: str) -> BlockResponse: ...

    def get_randao(self, slot: int) -> RandaoResponse: ...

    def get_withdrawals(self, slot: int) -> WithdrawalsResponse: ...


class MultiBeaconClient:
    """Uses several beacon nodes, preferring the one that last answered."""

    def __init__(
        self,
        instances: Sequence[BeaconInstance],
        allow_syncing_beacon_node: bool | None = None,
    ) -> None:
        self._log = logging.getLogger("boostrelay").getChild("beacon_client")
        self._instances = list(instances)
        self._best_index = 0
        self._lock = threading.Lock()
        if allow_syncing_beacon_node is None:
            allow_syncing_beacon_node = os.environ.get("ALLOW_SYNCING_BEACON_NODE", "") != ""
            if allow_syncing_beacon_node:
                self._log.warning("env: ALLOW_SYNCING_BEACON_NODE: allow syncing beacon node")
        self.allow_syncing_beacon_node = allow_syncing_beacon_node

    @property
    def instances(self) -> list[BeaconInstance]:
        return list(self._instances)

    def _store_best(self, index: int) -> None:
        with self._lock:
            self._best_index = index

    def _instances_by_last_response(self) -> list[BeaconInstance]:
        with self._lock:
            index = self._best_index
        instances = list(self._instances)
        if index:
            instances[0], instances[index] = instances[index], instances[0]
        return instances

    def best_sync_status(self) -> SyncStatus:
        """Status of a synced node, asking all nodes at once.

        Raises BeaconNodeSyncingError when no node is synced (unless syncing
        nodes are allowed) and BeaconNodesUnavailableError when none answered.
        """
        best: SyncStatus | None = None
        found_synced = False
        with ThreadPoolExecutor(max_workers=max(1, len(self._instances))) as pool:
            futures = {pool.submit(inst.sync_status): inst for inst in self._instances}
            for future in as_completed(futures):
                uri = futures[future].uri
                try:
                    status = future.result()
                except Exception as exc:  # any node failure is only logged
                    self._log.error("failed to get sync status: %s", exc, extra={"uri": uri})
                    continue
                if found_synced:
                    continue
                if best is None:
                    best = status
                if not status.is_syncing:
                    best = status
                    found_synced = True

        if not found_synced and not self.allow_syncing_beacon_node:
            raise BeaconNodeSyncingError()
        if best is None:
            raise BeaconNodesUnavailableError()
        return best

    def _subscribe(self, start: Callable[[BeaconInstance], Callable[[Any], None]], queue: Any):
        threads = []
        for instance in self._instances:
            thread = threading.Thread(target=start(instance), args=(queue,), daemon=True)
            thread.start()
            threads.append(thread)
        return threads

    def subscribe_to_head_events(self, queue: Any) -> list[threading.Thread]:
        """Subscribe to head events on every node; one event may arrive once per node."""
        return self._subscribe(lambda inst: inst.subscribe_to_head_events, queue)

    def subscribe_to_payload_attributes_events(self, queue: Any) -> list[threading.Thread]:
        """Subscribe to payload_attributes events on every node."""
        return self._subscribe(lambda inst: inst.subscribe_to_payload_attributes_events, queue)

    def _first_success(
        self,
        action: Callable[[BeaconInstance], T],
        what: str,
        remember: bool = True,
        unavailable: bool = False,
        fields: dict[str, Any] | None = None,
    ) -> T:
        last_error: Exception | None = None
        for index, instance in enumerate(self._instances_by_last_response()):
            extra = {**(fields or {}), "uri": instance.uri}
            try:
                result = action(instance)
            except Exception as exc:  # try the next node on any failure
                self._log.warning("failed to get %s: %s", what, exc, extra=extra)
                last_error = exc
                continue
            if remember:
                self._store_best(index)
            return result

        self._log.error("failed to get %s on any CL node: %s", what, last_error, extra=fields or {})
        if unavailable or last_error is None:
            raise BeaconNodesUnavailableError() from last_error
        raise last_error

    def get_state_validators(self, state_id: str) -> dict[str, ValidatorResponseEntry]:
        """Active and pending validators from the first node that answers."""
        return self._first_success(
            lambda inst: inst.get_state_validators(state_id), "validators", unavailable=True
        )

    def get_proposer_duties(self, epoch: int) -> ProposerDutiesResponse:
        """Proposer duties of an epoch from the first node that answers."""
        return self._first_success(
            lambda inst: inst.get_proposer_duties(epoch),
            "proposer duties",
            unavailable=True,
            fields={"epoch": epoch},
        )

    def publish_block(self, block: Any) -> int:
        """Publish on all nodes at once and return the first success status.

        A 202 answer counts as a failure. Raises PublishBlockError when no node
        accepted the block.
        """
        fields = {"slot": block.slot(), "blockHash": block.block_hash()}
        clients = self._instances_by_last_response()
        last_code = 0
        last_error: Exception | None = None
        pool = ThreadPoolExecutor(max_workers=max(1, len(clients)))
        try:
            futures = {}
            for index, client in enumerate(clients):
                self._log.debug("publishing block", extra={**fields, "uri": client.uri})
                futures[pool.submit(client.publish_block, block)] = index
            for future in as_completed(futures):
                index = futures[future]
                extra = {**fields, "beacon": clients[index].uri}
                try:
                    code = future.result()
                except Exception as exc:  # any node failure: wait for the others
                    last_code = getattr(exc, "status_code", 0) or 0
                    last_error = exc
                    self._log.warning(
                        "failed to publish block: %s", exc, extra={**extra, "statusCode": last_code}
                    )
                    continue
                if code == 202:
                    last_code = code
                    last_error = BeaconBlock202Error()
                    self._log.error(
                        "block failed validation but was still broadcast",
                        extra={**extra, "statusCode": code},
                    )
                    continue
                self._store_best(index)
                self._log.info("published block", extra={**extra, "statusCode": code})
                return code
        finally:
            pool.shutdown(wait=False)

        self._log.error("failed to publish block on any CL node", extra=fields)
        raise PublishBlockError(last_code, last_error) from last_error

    def get_genesis(self) -> GenesisResponse:
        return self._first_success(lambda inst: inst.get_genesis(), "genesis info")

    def get_spec(self) -> SpecResponse:
        return self._first_success(lambda inst: inst.get_spec(), "spec", remember=False)

    def get_fork_schedule(self) -> ForkScheduleResponse:
        return self._first_success(lambda inst: inst.get_fork_schedule(), "fork schedule")

    def get_block(self, block_id: str) -> BlockResponse:
        return self._first_success(
            lambda inst: inst.get_block(block_id),
            "block",
            remember=False,
            fields={"blockID": block_id},
        )

    def get_randao(self, slot: int) -> RandaoResponse:
        return self._first_success(
            lambda inst: inst.get_randao(slot), "randao", fields={"slot": slot}
        )

    def get_withdrawals(self, slot: int) -> WithdrawalsResponse:
        """Withdrawals of a slot.

        Raises WithdrawalsBeforeCapellaError as soon as a node reports that
        capella has not been reached.
        """
        last_error: Exception | None = None
        for index, instance in enumerate(self._instances_by_last_response()):
            try:
                result = instance.get_withdrawals(slot)
            except Exception as exc:  # try the next node on any failure
                last_error = exc
                if _WITHDRAWALS_BEFORE_CAPELLA in str(exc):
                    break
                self._log.warning(
                    "failed to get withdrawals: %s", exc, extra={"slot": slot, "uri": instance.uri}
                )
                continue
            self._store_best(index)
            return result

        if last_error is not None and _WITHDRAWALS_BEFORE_CAPELLA in str(last_error):
            self._log.debug(
                "failed to get withdrawals as capella has not been reached", extra={"slot": slot}
            )
            raise WithdrawalsBeforeCapellaError() from last_error
        self._log.warning(
            "failed to get withdrawals from any CL node: %s", last_error, extra={"slot": slot}
        )
        if last_error is None:
            raise BeaconNodesUnavailableError()
        raise last_error