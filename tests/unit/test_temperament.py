import random
import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from townsfolk.domain.services.temperament import (
    calculate_humors,
    calculate_temperament,
    temperament_to_big_five,
)


class _NoVarianceRandom(random.Random):
    def randint(self, a, b):
        return 0


class HumorTests(unittest.TestCase):
    def test_humors_always_sum_to_one_hundred(self) -> None:
        for extraversion in range(0, 101, 7):
            for neuroticism in range(0, 101, 9):
                humors = calculate_humors({"extraversion": extraversion, "neuroticism": neuroticism})
                self.assertEqual(100, sum(humors.values()), (extraversion, neuroticism))

    def test_rounding_residual_is_taken_from_primary_humor(self) -> None:
        humors = calculate_humors({"extraversion": 51, "neuroticism": 49})
        self.assertEqual({"blood": 25, "yellow_bile": 25, "black_bile": 25, "phlegm": 25}, humors)

    def test_missing_traits_default_to_midpoint(self) -> None:
        self.assertEqual(calculate_humors({"extraversion": 50, "neuroticism": 50}), calculate_humors({}))


class TemperamentTests(unittest.TestCase):
    def test_dominant_sanguine_without_close_secondary(self) -> None:
        result = calculate_temperament({"extraversion": 90, "neuroticism": 10})

        self.assertEqual("sanguine", result["primary"])
        self.assertIsNone(result["secondary"])
        self.assertEqual({"blood": 45, "yellow_bile": 25, "black_bile": 5, "phlegm": 25}, result["humors"])

    def test_secondary_kept_when_at_least_sixty_percent_of_primary(self) -> None:
        result = calculate_temperament({"extraversion": 20, "neuroticism": 80})

        self.assertEqual("melancholic", result["primary"])
        self.assertEqual("choleric", result["secondary"])

    def test_ties_resolve_in_fixed_temperament_order(self) -> None:
        result = calculate_temperament({"extraversion": 50, "neuroticism": 50})

        self.assertEqual("sanguine", result["primary"])
        self.assertEqual("choleric", result["secondary"])

    def test_extroversion_spelling_is_accepted(self) -> None:
        self.assertEqual(
            calculate_temperament({"extraversion": 90, "neuroticism": 10}),
            calculate_temperament({"extroversion": 90, "neuroticism": 10}),
        )


class ReverseMappingTests(unittest.TestCase):
    def test_primary_only_uses_base_table(self) -> None:
        scores = temperament_to_big_five("sanguine", rng=_NoVarianceRandom())
        self.assertEqual(
            {"extraversion": 75, "neuroticism": 25, "openness": 60, "agreeableness": 60, "conscientiousness": 50},
            scores,
        )

    def test_secondary_blends_halfway_rounding_up(self) -> None:
        scores = temperament_to_big_five("sanguine", "phlegmatic", rng=_NoVarianceRandom())
        self.assertEqual(
            {"extraversion": 55, "neuroticism": 28, "openness": 53, "agreeableness": 65, "conscientiousness": 53},
            scores,
        )

    def test_variance_stays_within_bounds(self) -> None:
        rng = random.Random(11)
        for _ in range(50):
            scores = temperament_to_big_five("choleric", rng=rng)
            self.assertTrue(60 <= scores["extraversion"] <= 79)
            self.assertTrue(all(0 <= value <= 100 for value in scores.values()))

    def test_unknown_temperament_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            temperament_to_big_five("bilious")


if __name__ == "__main__":
    unittest.main()
