# trust_ledger.py - Encrypted trust score ledger: append-and-fold plus read queries

import os
from dataclasses import dataclass
from enum import IntEnum

from accumulator import Aggregate, fold
from stats_cache import StatisticsCache, TrustStatistics
from trust_errors import (
    BatchSizeInvalid, CapacityExceeded, EmptyProof, IndexOutOfBounds,
    InvalidAddress, InvalidProof, InvalidRange, RangeOutOfBounds,
)
from wallet import ZERO_ADDRESS, address_from_public_key, normalize_address

MAX_EVENTS = 1000
MIN_SCORE = 1
MAX_SCORE = 10
MAX_BATCH_SIZE = 10
ABSOLUTE_BATCH_CAP = 50


class OperationKind(IntEnum):
    RECORD = 0


@dataclass(frozen=True)
class UserRecord:
    """Everything the ledger keeps for one user; replaced whole on append"""
    history: tuple = ()
    aggregate: Aggregate = Aggregate()
    last_activity: int = 0

    @property
    def event_count(self):
        return self.aggregate.event_count


EMPTY_RECORD = UserRecord()


class TrustScoreLedger:
    """
    Per-user append-only history of encrypted scores with an encrypted running
    total and average.

    The ledger never decrypts. Every handle it produces is granted to itself
    and to the submitting user in the same step that publishes it. The host
    chain must serialize calls that mutate a given user's record.
    """

    def __init__(self, chain, executor, acl, verifier, decryptor, address=None):
        self.chain = chain
        self.executor = executor
        self.acl = acl
        self.verifier = verifier
        self.decryptor = decryptor
        self.address = address or address_from_public_key(os.urandom(32))
        self.statistics_cache = StatisticsCache()
        self._records = {}
        print(f"[LEDGER] TrustScoreTracker deployed at {self.address}")

    # --- Address handling ---
    def _require_address(self, user):
        """Key for operations that dereference per-user storage directly"""
        key = self._lookup_key(user)
        if key == ZERO_ADDRESS:
            raise InvalidAddress()
        return key

    def _lookup_key(self, user):
        try:
            return normalize_address(user)
        except ValueError:
            raise InvalidAddress()

    def _record(self, user):
        return self._records.get(self._lookup_key(user), EMPTY_RECORD)

    # --- Mutation ---
    def record_event(self, sender, handle, proof):
        """
        Append one encrypted score for `sender` and fold it into the aggregates.

        All checks and all homomorphic work happen before anything is
        published; the record, the grants and the notifications are then
        written together. Returns the new event's index.
        """
        user = self._require_address(sender)
        if not proof:
            raise EmptyProof()

        record = self._records.get(user, EMPTY_RECORD)
        if len(record.history) >= MAX_EVENTS:
            raise CapacityExceeded()

        score = self.verifier.verify(handle, proof, user, self.address)
        step = fold(self.executor, record.aggregate, score)
        updated = UserRecord(
            history=record.history + (score,),
            aggregate=step.aggregate,
            last_activity=self.chain.timestamp(),
        )

        self.acl.grant_all((score,) + step.produced, (self.address, user))
        self._records[user] = updated

        self.chain.emit(self.address, "TrustEventRecorded", user=user, event_count=updated.event_count)
        self.chain.emit(self.address, "ScoreQueried", user=user, operation_kind=int(OperationKind.RECORD))
        print(f"[LEDGER] ✓ Trust event #{updated.event_count} recorded for {user}")
        return updated.event_count - 1

    # --- Aggregate lookups (soft defaults) ---
    def get_total(self, user):
        """Encrypted running total, or the zero handle for a never-active user"""
        return self._record(user).aggregate.total

    def get_average(self, user):
        """Encrypted running average, or the zero handle for a never-active user"""
        return self._record(user).aggregate.average

    def get_event_count(self, user):
        return self._record(user).event_count

    def get_history_length(self, user):
        return len(self._record(user).history)

    def get_last_activity(self, user):
        return self._record(user).last_activity

    # --- Indexed lookups ---
    def get_by_index(self, user, index):
        history = self._records.get(self._require_address(user), EMPTY_RECORD).history
        if index < 0 or index >= len(history):
            raise IndexOutOfBounds()
        return history[index]

    def get_range(self, user, start, end):
        """Handles history[start:end]; only the requested slice is copied"""
        history = self._records.get(self._require_address(user), EMPTY_RECORD).history
        if start < 0 or start >= end:
            raise InvalidRange()
        if end > len(history):
            raise RangeOutOfBounds()
        return list(history[start:end])

    # --- Statistics ---
    def get_live_statistics(self, user):
        """Current statistics; refreshes the cached snapshot and emits StatisticsViewed"""
        key = self._require_address(user)
        record = self._records.get(key, EMPTY_RECORD)
        stats = TrustStatistics(record.event_count, record.last_activity, record.event_count > 0)

        self.statistics_cache.store(key, stats.event_count, stats.last_activity)
        self.chain.emit(
            self.address, "StatisticsViewed",
            user=key, event_count=stats.event_count, last_activity=stats.last_activity
        )
        return stats

    def get_cached_statistics(self, user):
        """Decode the packed snapshot; no side effects, may lag the live view"""
        return self.statistics_cache.read(self._lookup_key(user))

    def get_packed_statistics(self, user):
        """Raw 256-bit snapshot word"""
        return self.statistics_cache.word(self._lookup_key(user))

    # --- Batch validation ---
    def validate_batch(self, sender, handles, proofs):
        """
        One boolean per input: is the encrypted score within [MIN_SCORE, MAX_SCORE]?

        Every proof is checked before any input is consumed. The check is
        homomorphic and only its boolean outcome is decrypted.
        """
        if len(handles) != len(proofs):
            raise BatchSizeInvalid("Array length mismatch")
        if len(handles) > ABSOLUTE_BATCH_CAP:
            raise BatchSizeInvalid("Maximum batch size exceeded for gas limits")
        if not 1 <= len(handles) <= MAX_BATCH_SIZE:
            raise BatchSizeInvalid("Batch size must be 1-10")

        user = self._require_address(sender)
        if len(set(handles)) != len(handles):
            raise InvalidProof("Input used twice in one batch")
        for handle, proof in zip(handles, proofs):
            self.verifier.check(handle, proof, user, self.address)
        verified = [
            self.verifier.verify(handle, proof, user, self.address)
            for handle, proof in zip(handles, proofs)
        ]

        results = []
        for score in verified:
            flag = self.executor.in_range(score, MIN_SCORE, MAX_SCORE)
            self.acl.grant_all((score, flag), (self.address, user))
            results.append(self.decryptor.decrypt_for_contract(flag, self.address))

        print(f"[LEDGER] Batch of {len(results)} validated for {user}: {sum(results)} in range")
        return results

    # --- Introspection ---
    def users(self):
        return list(self._records)
