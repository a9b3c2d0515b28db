import unittest

from hotplate.difference import DifferenceTable
from hotplate.numeric import LinearRegression, SearchDepthError, mean, minimum_search


class TestDifferenceTable(unittest.TestCase):
    def test_predict_before_input_is_none(self):
        self.assertIsNone(DifferenceTable(2).predict(1))
        self.assertIsNone(DifferenceTable(2).last(0))

    def test_linear_sequence(self):
        table = DifferenceTable(1)
        for value in (1, 2, 3):
            table.next(value)
        self.assertEqual(table.predict(1), 4)
        self.assertEqual(table.predict(3), 6)

    def test_quadratic_sequence(self):
        table = DifferenceTable(2)
        for value in (1, 4, 9):
            table.next(value)
        self.assertEqual(table.table, [9, 5, 2])
        self.assertEqual(table.predict(1), 16)
        self.assertEqual(table.predict(2), 25)

    def test_first_value_starts_with_zero_differences(self):
        table = DifferenceTable(2)
        self.assertEqual(table.next(7.0), [7.0, 0.0, 0.0])
        self.assertEqual(table.predict(5), 7.0)

    def test_last_reconstructs_history(self):
        table = DifferenceTable(2)
        for value in (1, 4, 9):
            table.next(value)
        self.assertEqual(table.last(0), 9)
        self.assertEqual(table.last(1), 4)
        self.assertEqual(table.last(2), 1)
        self.assertIsNone(table.last(3))

    def test_order_zero_holds_value(self):
        table = DifferenceTable(0)
        table.next(3.5)
        table.next(4.5)
        self.assertEqual(table.predict(10), 4.5)

    def test_negative_order_rejected(self):
        with self.assertRaises(ValueError):
            DifferenceTable(-1)


class TestLinearRegression(unittest.TestCase):
    def test_exact_line(self):
        regression = LinearRegression()
        for x in range(5):
            regression.add_data(x, 3 * x - 2)
        self.assertAlmostEqual(regression.gradient, 3.0)
        self.assertAlmostEqual(regression.intercept, -2.0)
        self.assertAlmostEqual(regression.predict(10), 28.0)

    def test_too_few_points(self):
        regression = LinearRegression()
        regression.add_data(1, 1)
        with self.assertRaises(ValueError):
            regression.gradient

    def test_mean(self):
        self.assertEqual(mean([1, 2, 3]), 2)
        with self.assertRaises(ValueError):
            mean([])


class TestMinimumSearch(unittest.TestCase):
    def test_finds_interior_minimum(self):
        result = minimum_search(lambda x, y: (x - 3.3) ** 2 + (y + 1.2) ** 2, [5.0, 0.0])
        self.assertAlmostEqual(result[0], 3.3, places=3)
        self.assertAlmostEqual(result[1], -1.2, places=3)

    def test_moves_far_from_start(self):
        result = minimum_search(lambda x: (x - 40) ** 2, [0.5])
        self.assertAlmostEqual(result[0], 40, places=3)

    def test_respects_bounds(self):
        result = minimum_search(lambda x: (x + 5) ** 2, [5.0], bounds=[(0, None)])
        self.assertAlmostEqual(result[0], 0.0, delta=1e-3)

    def test_start_clipped_into_bounds(self):
        result = minimum_search(lambda x, y: (x - 0.5) ** 2 + (y - 2) ** 2, [3.0, 2.0],
                                bounds=[(0, 1), (None, None)])
        self.assertAlmostEqual(result[0], 0.5, places=3)
        self.assertAlmostEqual(result[1], 2.0, places=3)

    def test_iteration_limit_raises(self):
        def rosenbrock(x, y):
            return (1 - x) ** 2 + 100 * (y - x * x) ** 2

        with self.assertRaises(SearchDepthError):
            minimum_search(rosenbrock, [-1.2, 1.0], max_iterations=1)

    def test_invalid_settings(self):
        with self.assertRaises(ValueError):
            minimum_search(lambda x: x, [])
        with self.assertRaises(ValueError):
            minimum_search(lambda x: x, [0.5], bounds=[(1, 0)])
        with self.assertRaises(ValueError):
            minimum_search(lambda x: x, [0.5], bounds=[(0, 1), (0, 1)])
        with self.assertRaises(ValueError):
            minimum_search(lambda x: x * x, [0.5], tolerance=0)


if __name__ == '__main__':
    unittest.main()
