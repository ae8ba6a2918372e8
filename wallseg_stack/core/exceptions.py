class WallSegError(Exception):
    pass


class UnsupportedOutputShape(WallSegError):
    def __init__(self, message: str, shape=None):
        super().__init__(message)
        self.shape = shape


class DimensionMismatch(WallSegError):
    def __init__(self, message: str, expected: tuple = None, actual: tuple = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class InvalidConfiguration(WallSegError):
    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field
