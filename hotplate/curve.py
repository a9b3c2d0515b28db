# hotplate/curve.py
# Piecewise linear calibration curve
#
# Maps one scalar measurement onto another (resistance -> temperature,
# temperature -> power, elapsed time -> profile temperature). Points are kept
# sorted by x; queries between points interpolate, queries outside the
# recorded range extrapolate along the nearest edge segment.

from bisect import bisect_right


class CalibrationCurve:
    """
    Sorted (x, y) interpolation table

    Each point may carry an attribute dictionary (for example the profile
    stage a point belongs to). Insertion appends and then re-sorts, so points
    sharing an x value are all kept in insertion order.

    Example:
        curve = CalibrationCurve().add_point(2.0, 25, 2.4, 75)
        curve.estimate(2.2)  # 50.0
    """

    def __init__(self, *points):
        """
        Initialize curve

        Args:
            *points: Optional flat list of x, y pairs
        """
        self.points = []
        if points:
            self.add_point(*points)

    def add_point(self, *values):
        """
        Add one or more points given as x, y, x, y, ...

        Returns:
            self, so calls may be chained
        """
        if len(values) % 2:
            raise ValueError("add_point() expects x, y pairs")

        for i in range(0, len(values), 2):
            self.points.append((values[i], values[i + 1], None))

        self._sort()
        return self

    def add_named_point(self, x, y, name):
        """Add a single point tagged with a name attribute"""
        self.points.append((x, y, {'name': name}))
        self._sort()
        return self

    def add_hash_points(self, xkey, ykey, points):
        """
        Add points from dictionaries

        Dictionaries missing either key are skipped. The whole dictionary is
        kept as the point's attributes.

        Args:
            xkey: Key of the x value (e.g. 'resistance')
            ykey: Key of the y value (e.g. 'temperature')
            points: Iterable of dictionaries

        Returns:
            self
        """
        for point in points:
            if point.get(xkey) is None or point.get(ykey) is None:
                continue
            self.points.append((point[xkey], point[ykey], point))

        self._sort()
        return self

    def _sort(self):
        # list.sort is stable, duplicates keep insertion order
        self.points.sort(key=lambda p: p[0])

    def estimate(self, x):
        """
        Interpolated or extrapolated y value for x

        Raises:
            ValueError: If the curve is empty
        """
        y, _ = self.estimate_with_attributes(x)
        return y

    def estimate_with_attributes(self, x):
        """
        Estimate y and return the attributes of the segment used

        Inside the range the segment's upper point supplies the attributes,
        below the range the first point, above the range the last point.

        Returns:
            Tuple of (y, attributes or None)
        """
        points = self.points

        if not points:
            raise ValueError("Cannot estimate from an empty curve")

        if len(points) == 1:
            return points[0][1], points[0][2]

        if x < points[0][0]:
            return self._from_segment(x, points[0], self._next_distinct(0)), points[0][2]

        if x > points[-1][0]:
            return self._from_segment(x, self._previous_distinct(len(points) - 1), points[-1]), points[-1][2]

        idx = bisect_right([p[0] for p in points], x)
        lo = points[idx - 1]

        # Exact hit returns the recorded y unchanged
        if lo[0] == x:
            return lo[1], lo[2]

        hi = points[idx]
        return self._from_segment(x, lo, hi), hi[2]

    def _next_distinct(self, idx):
        x = self.points[idx][0]
        for point in self.points[idx + 1:]:
            if point[0] != x:
                return point
        return self.points[idx]

    def _previous_distinct(self, idx):
        x = self.points[idx][0]
        for point in reversed(self.points[:idx]):
            if point[0] != x:
                return point
        return self.points[idx]

    @staticmethod
    def _from_segment(x, lo, hi):
        if hi[0] == lo[0]:
            return lo[1]
        return (lo[1] * (hi[0] - x) + hi[1] * (x - lo[0])) / (hi[0] - lo[0])

    def length(self):
        """Number of points in the curve"""
        return len(self.points)

    def __len__(self):
        return len(self.points)

    def start(self):
        """Lowest x value"""
        return self.points[0][0]

    def end(self):
        """Highest x value"""
        return self.points[-1][0]

    def get_points(self):
        """List of (x, y) tuples"""
        return [(p[0], p[1]) for p in self.points]

    def reset(self):
        """Discard every point"""
        self.points = []

    def __str__(self):
        return f"CalibrationCurve(points={len(self.points)})"

    def __repr__(self):
        return self.__str__()
