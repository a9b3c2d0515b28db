# hotplate/difference.py
# Finite difference extrapolation
#
# Keeps the latest value of a series together with its first N backward
# differences. Extending the highest difference as a constant gives a
# polynomial forecast of the series (order 1 = linear, 2 = quadratic, ...).

class DifferenceTable:
    """
    Rolling table of backward differences

    table[0] is the latest value, table[k] the k-th backward difference.
    The first value ingested starts every difference at zero.
    """

    def __init__(self, order=2):
        """
        Initialize difference table

        Args:
            order: Highest difference kept (default: 2)
        """
        if order < 0:
            raise ValueError(f"Difference order must be >= 0, got {order}")
        self.order = order
        self.table = None

    def next(self, value):
        """
        Ingest the next value of the series

        Returns:
            The updated table (list of order + 1 values)
        """
        if self.table is None:
            self.table = [value] + [0.0] * self.order
            return self.table

        previous = self.table
        table = [value]
        for i in range(self.order):
            table.append(table[i] - previous[i])
        self.table = table
        return table

    def predict(self, ahead=1):
        """
        Forecast the value `ahead` steps after the latest one

        Returns:
            Forecast value, or None before any value was ingested
        """
        if self.table is None:
            return None

        value = self.table[0]
        diffs = list(self.table[1:])

        for _ in range(ahead):
            # Highest difference stays constant, lower ones accumulate
            for i in range(len(diffs) - 2, -1, -1):
                diffs[i] += diffs[i + 1]
            if diffs:
                value += diffs[0]

        return value

    def last(self, behind=0):
        """
        Reconstruct a past value from the table

        Args:
            behind: Steps back from the latest value (0 = latest)

        Returns:
            Value, or None if behind exceeds the order or nothing was ingested
        """
        if self.table is None or behind > self.order:
            return None

        value = self.table[0]
        diffs = list(self.table[1:])

        for _ in range(behind):
            value -= diffs[0]
            for i in range(len(diffs) - 1):
                diffs[i] -= diffs[i + 1]

        return value

    def reset(self):
        self.table = None

    def __str__(self):
        return f"DifferenceTable(order={self.order}, table={self.table})"
