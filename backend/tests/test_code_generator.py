# Overview: Pytest coverage for referral/coupon code generation.

import pytest

from refpoints.errors import GenerationExhausted
from refpoints.services import code_generator
from refpoints.services.code_generator import CODE_ALPHABET, generate, normalize_code, random_code


class TestRandomCode:
    def test_default_shape(self):
        code = random_code()
        assert len(code) == 8
        assert set(code) <= set(CODE_ALPHABET)

    def test_alphabet_skips_lookalikes(self):
        for ch in "01OIL":
            assert ch not in CODE_ALPHABET

    def test_custom_length(self):
        assert len(random_code(12)) == 12


class TestGenerate:
    def test_never_returns_a_taken_code(self):
        """10,000 draws against a growing oracle never repeat."""
        taken = set()
        for _ in range(10_000):
            code = generate(taken.__contains__)
            assert code not in taken
            taken.add(code)
        assert len(taken) == 10_000

    def test_skips_colliding_candidates(self):
        candidates = iter(["AAAAAAAA", "BBBBBBBB", "CCCCCCCC"])
        code = generate(lambda c: c in {"AAAAAAAA", "BBBBBBBB"}, source=lambda n: next(candidates))
        assert code == "CCCCCCCC"

    def test_exhaustion_after_max_attempts(self):
        calls = []

        def always_taken(code):
            calls.append(code)
            return True

        with pytest.raises(GenerationExhausted) as exc:
            generate(always_taken, max_attempts=4)
        assert len(calls) == 4
        assert exc.value.details == {"attempts": 4}
        assert exc.value.status_code == 503

    def test_default_attempt_budget(self):
        calls = []
        with pytest.raises(GenerationExhausted):
            generate(lambda c: calls.append(c) or True)
        assert len(calls) == code_generator.DEFAULT_MAX_ATTEMPTS

    @pytest.mark.parametrize("kwargs", [{"length": 0}, {"max_attempts": 0}, {"length": -3}])
    def test_rejects_bad_parameters(self, kwargs):
        with pytest.raises(ValueError):
            generate(lambda c: False, **kwargs)


def test_normalize_code():
    assert normalize_code("  abc12xyz ") == "ABC12XYZ"
    assert normalize_code(None) == ""
