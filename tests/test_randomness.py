import unittest
from datetime import datetime, timedelta, timezone

import requests

from rafflepool.constants import ORACLE_TIMEOUT
from rafflepool.models import Raffle
from rafflepool.raffle.errors import (
    AlreadyDistributedError,
    DeadlineNotReachedError,
    NoParticipantsError,
    OracleDataError,
    RaffleClosedError,
    RandomnessAlreadyRequestedError,
    RandomnessAlreadySettledError,
    RandomnessNotRequestedError,
    RandomnessNotResolvedError,
    TooEarlyForFallbackError,
    UnauthorizedError,
)
from rafflepool.raffle.randomness import (
    ChainClock,
    RandomnessCoordinator,
    decode_oracle_payload,
    derive_fallback_randomness,
    generate_fallback_seed,
)

from support import AFTER_DEADLINE, DEADLINE, OWNER, T0, FakeChainClient, resolved, value_of

_U64 = 1 << 64


def _words(seed: int) -> bytes:
    return b"".join(((seed * k) % _U64).to_bytes(8, "little") for k in range(1, 5))


class DecodeOraclePayloadTests(unittest.TestCase):
    def test_accepts_hex_bytes_and_lists(self):
        value = value_of("oracle")
        self.assertEqual(decode_oracle_payload(resolved(value)), value)
        self.assertEqual(
            decode_oracle_payload({"status": "resolved", "value": "0x" + value.hex()}),
            value,
        )
        self.assertEqual(
            decode_oracle_payload({"status": "RESOLVED", "value": value}), value
        )
        self.assertEqual(
            decode_oracle_payload({"status": "resolved", "value": list(value)}), value
        )

    def test_pending_is_not_resolved(self):
        for status in ("requested", "pending"):
            with self.subTest(status=status):
                with self.assertRaises(RandomnessNotResolvedError):
                    decode_oracle_payload({"status": status})

    def test_malformed_payloads(self):
        bad = [
            None,
            "resolved",
            {"status": "failed"},
            {"status": "resolved"},
            {"status": "resolved", "value": "zz" * 32},
            {"status": "resolved", "value": "ab" * 31},
            {"status": "resolved", "value": [256] * 32},
            {"status": "resolved", "value": 12345},
        ]
        for payload in bad:
            with self.subTest(payload=payload):
                with self.assertRaises(OracleDataError):
                    decode_oracle_payload(payload)


class FallbackSeedTests(unittest.TestCase):
    def test_known_vectors(self):
        self.assertEqual(generate_fallback_seed(0, 0, ""), bytes(32))
        self.assertEqual(generate_fallback_seed(1, 0, ""), _words(31))
        # 1 -> 1*31 + 2 = 33 -> 33*31 + ord("a") = 1120
        self.assertEqual(generate_fallback_seed(1, 2, "a"), _words(1120))

    def test_wraps_at_64_bits(self):
        seed = generate_fallback_seed(_U64 - 1, 0, "")
        self.assertEqual(seed[:8], (_U64 - 31).to_bytes(8, "little"))
        self.assertEqual(len(seed), 32)

    def test_raffle_id_changes_seed(self):
        self.assertNotEqual(
            generate_fallback_seed(10, 20, "raffle-a"),
            generate_fallback_seed(10, 20, "raffle-b"),
        )

    def test_slot_hash_preferred_when_long_enough(self):
        clock = ChainClock(slot=5, unix_timestamp=6)
        slot_hash = bytes(range(40))
        self.assertEqual(
            derive_fallback_randomness("r", clock, slot_hash), slot_hash[:32]
        )
        self.assertEqual(
            derive_fallback_randomness("r", clock, b"\x01" * 16),
            generate_fallback_seed(5, 6, "r"),
        )
        self.assertEqual(
            derive_fallback_randomness("r", clock), generate_fallback_seed(5, 6, "r")
        )


class ChainClockTests(unittest.TestCase):
    def test_from_payload(self):
        clock = ChainClock.from_payload({"slot": "42", "unix_timestamp": 0})
        self.assertEqual(clock, ChainClock(slot=42, unix_timestamp=0))
        self.assertEqual(clock.as_datetime, datetime(1970, 1, 1, tzinfo=timezone.utc))

    def test_malformed_payload(self):
        with self.assertRaises(ValueError):
            ChainClock.from_payload({"slot": 1})
        with self.assertRaises(ValueError):
            ChainClock.from_payload({"slot": "x", "unix_timestamp": 1})


class RandomnessCoordinatorTests(unittest.TestCase):
    def _raffle(self, participants: int = 3) -> Raffle:
        raffle = Raffle(
            raffle_id="coord",
            owner=OWNER,
            prize_pool=1000,
            deadline=DEADLINE,
            max_participants=50,
        )
        raffle.participant_count = participants
        return raffle

    def _requested(self, client: FakeChainClient) -> tuple[RandomnessCoordinator, Raffle]:
        coordinator = RandomnessCoordinator(client)
        raffle = self._raffle()
        coordinator.request(raffle, OWNER, "oracle-handle-1", now=AFTER_DEADLINE)
        return coordinator, raffle

    def test_request_records_handle_and_time(self):
        coordinator = RandomnessCoordinator(FakeChainClient())
        raffle = self._raffle()
        coordinator.request(raffle, OWNER, "  handle-7 ", now=AFTER_DEADLINE)
        self.assertTrue(raffle.randomness_requested)
        self.assertEqual(raffle.randomness_handle, "handle-7")
        self.assertEqual(raffle.randomness_request_time, AFTER_DEADLINE)
        self.assertEqual(raffle.fallback_available_at, AFTER_DEADLINE + ORACLE_TIMEOUT)

    def test_request_guards(self):
        coordinator = RandomnessCoordinator(FakeChainClient())

        with self.assertRaises(UnauthorizedError):
            coordinator.request(self._raffle(), "stranger", "h", now=AFTER_DEADLINE)
        with self.assertRaises(DeadlineNotReachedError):
            coordinator.request(self._raffle(), OWNER, "h", now=T0)
        with self.assertRaises(NoParticipantsError):
            coordinator.request(self._raffle(0), OWNER, "h", now=AFTER_DEADLINE)
        with self.assertRaises(ValueError):
            coordinator.request(self._raffle(), OWNER, "  ", now=AFTER_DEADLINE)

        closed = self._raffle()
        closed.is_closed = True
        with self.assertRaises(RaffleClosedError):
            coordinator.request(closed, OWNER, "h", now=AFTER_DEADLINE)

        raffle = self._raffle()
        coordinator.request(raffle, OWNER, "h", now=AFTER_DEADLINE)
        with self.assertRaises(RandomnessAlreadyRequestedError):
            coordinator.request(raffle, OWNER, "h2", now=AFTER_DEADLINE)
        self.assertEqual(raffle.randomness_handle, "h")

    def test_request_at_exact_deadline_is_allowed(self):
        raffle = self._raffle()
        RandomnessCoordinator(FakeChainClient()).request(raffle, OWNER, "h", now=DEADLINE)
        self.assertTrue(raffle.randomness_requested)

    def test_settle_requires_request(self):
        coordinator = RandomnessCoordinator(FakeChainClient())
        with self.assertRaises(RandomnessNotRequestedError):
            coordinator.settle(self._raffle(), OWNER, now=AFTER_DEADLINE)

    def test_settle_pending_leaves_raffle_untouched(self):
        client = FakeChainClient(randomness={"status": "requested"})
        coordinator, raffle = self._requested(client)
        with self.assertRaises(RandomnessNotResolvedError):
            coordinator.settle(raffle, OWNER, now=AFTER_DEADLINE)
        self.assertFalse(raffle.randomness_settled)
        self.assertFalse(raffle.is_distributed)
        self.assertIsNone(raffle.random_value)
        self.assertEqual(client.randomness_reads, ["oracle-handle-1"])

    def test_settle_commits_oracle_value(self):
        value = value_of("settle")
        client = FakeChainClient(randomness=resolved(value))
        coordinator, raffle = self._requested(client)
        self.assertEqual(coordinator.settle(raffle, OWNER, now=AFTER_DEADLINE), value)
        self.assertEqual(raffle.random_value, value)
        self.assertTrue(raffle.randomness_settled)
        self.assertTrue(raffle.is_distributed)
        self.assertFalse(raffle.is_active)
        self.assertFalse(raffle.uses_fallback)

        with self.assertRaises(RandomnessAlreadySettledError):
            coordinator.settle(raffle, OWNER, now=AFTER_DEADLINE)
        with self.assertRaises(RandomnessAlreadySettledError):
            coordinator.fallback(raffle, OWNER, now=AFTER_DEADLINE + ORACLE_TIMEOUT)

    def test_settle_rejects_non_owner(self):
        client = FakeChainClient(randomness=resolved(value_of("x")))
        coordinator, raffle = self._requested(client)
        with self.assertRaises(UnauthorizedError):
            coordinator.settle(raffle, "stranger", now=AFTER_DEADLINE)
        self.assertEqual(client.randomness_reads, [])

    def test_fallback_timing(self):
        client = FakeChainClient(randomness={"status": "pending"})
        coordinator, raffle = self._requested(client)
        just_before = AFTER_DEADLINE + ORACLE_TIMEOUT - timedelta(seconds=1)
        with self.assertRaises(TooEarlyForFallbackError):
            coordinator.fallback(raffle, OWNER, now=just_before)
        self.assertFalse(raffle.randomness_settled)

        with self.assertLogs("rafflepool.raffle.randomness", level="WARNING"):
            coordinator.fallback(raffle, OWNER, now=AFTER_DEADLINE + ORACLE_TIMEOUT)
        self.assertTrue(raffle.uses_fallback)
        self.assertTrue(raffle.is_distributed)
        self.assertEqual(raffle.random_value, generate_fallback_seed(1, 2, "coord"))

    def test_fallback_settles_only_once(self):
        coordinator, raffle = self._requested(FakeChainClient())
        settle_at = AFTER_DEADLINE + ORACLE_TIMEOUT
        first = coordinator.fallback(raffle, OWNER, now=settle_at)

        coordinator.client.clock = {"slot": 500, "unix_timestamp": 600}
        with self.assertRaises(RandomnessAlreadySettledError):
            coordinator.fallback(raffle, OWNER, now=settle_at + timedelta(days=1))
        self.assertEqual(raffle.random_value, first)
        self.assertEqual(raffle.settled_at, settle_at)

    def test_fallback_reads_clock_from_chain(self):
        client = FakeChainClient(clock={"slot": 9, "unix_timestamp": 9})
        coordinator, raffle = self._requested(client)
        with self.assertRaises(TypeError):
            coordinator.fallback(
                raffle,
                OWNER,
                now=AFTER_DEADLINE + ORACLE_TIMEOUT,
                clock=ChainClock(slot=0, unix_timestamp=1),
            )
        self.assertFalse(raffle.randomness_settled)

        coordinator.fallback(raffle, OWNER, now=AFTER_DEADLINE + ORACLE_TIMEOUT)
        self.assertEqual(raffle.random_value, generate_fallback_seed(9, 9, "coord"))

    def test_fallback_prefers_slot_hash(self):
        client = FakeChainClient(slot_hash="0x" + "ab" * 32, clock={"slot": 9, "unix_timestamp": 9})
        coordinator, raffle = self._requested(client)
        coordinator.fallback(raffle, OWNER, now=AFTER_DEADLINE + ORACLE_TIMEOUT)
        self.assertEqual(raffle.random_value, bytes.fromhex("ab" * 32))

    def test_fallback_ignores_malformed_slot_hash(self):
        client = FakeChainClient(slot_hash="not-hex", clock={"slot": 9, "unix_timestamp": 9})
        coordinator, raffle = self._requested(client)
        coordinator.fallback(raffle, OWNER, now=AFTER_DEADLINE + ORACLE_TIMEOUT)
        self.assertEqual(raffle.random_value, generate_fallback_seed(9, 9, "coord"))

    def test_fallback_survives_slot_hash_outage(self):
        class SlotHashDownClient(FakeChainClient):
            def get_recent_slot_hash(self):
                raise requests.HTTPError("503 slot hashes unavailable")

        client = SlotHashDownClient(clock={"slot": 4, "unix_timestamp": 7})
        coordinator, raffle = self._requested(client)
        with self.assertLogs("rafflepool.raffle.randomness", level="WARNING") as logs:
            coordinator.fallback(raffle, OWNER, now=AFTER_DEADLINE + ORACLE_TIMEOUT)
        self.assertTrue(raffle.randomness_settled)
        self.assertTrue(raffle.uses_fallback)
        self.assertEqual(raffle.random_value, generate_fallback_seed(4, 7, "coord"))
        self.assertTrue(any("Slot hash unavailable" in line for line in logs.output))

    def test_fallback_after_distribution(self):
        coordinator, raffle = self._requested(FakeChainClient())
        raffle.is_distributed = True
        with self.assertRaises(AlreadyDistributedError):
            coordinator.fallback(raffle, OWNER, now=AFTER_DEADLINE + ORACLE_TIMEOUT)


if __name__ == "__main__":
    unittest.main()
