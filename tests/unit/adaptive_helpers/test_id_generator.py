# tests/unit/adaptive_helpers/test_id_generator.py

import re

from alex_adaptation.adaptive_helpers.id_generator import IdGenerator


class TestIdGenerator:

    def test_same_seed_same_sequence(self):
        a = IdGenerator(seed=7)
        b = IdGenerator(seed=7)
        assert [a.next_id("decision") for _ in range(5)] == [b.next_id("decision") for _ in range(5)]

    def test_format_and_counter(self):
        gen = IdGenerator(seed=1)
        first = gen.next_id("conflict")
        second = gen.next_id("conflict")
        assert re.fullmatch(r"conflict_1_[0-9a-f]{8}", first)
        assert second.startswith("conflict_2_")

    def test_ids_are_unique(self):
        gen = IdGenerator()
        ids = {gen.next_id("x") for _ in range(500)}
        assert len(ids) == 500

    def test_reseed_restarts_sequence(self):
        gen = IdGenerator(seed=3)
        first_run = [gen.next_id("opt") for _ in range(3)]
        gen.reseed(3)
        assert [gen.next_id("opt") for _ in range(3)] == first_run

    def test_uniform_is_deterministic_for_seed(self):
        a = IdGenerator(seed=11)
        b = IdGenerator(seed=11)
        values = [a.uniform(-0.1, 0.1) for _ in range(10)]
        assert values == [b.uniform(-0.1, 0.1) for _ in range(10)]
        assert all(-0.1 <= v <= 0.1 for v in values)
