class CaseInsensitiveRegistry(dict):
    """
    Name registry with case-insensitive lookup.

    Names keep the casing they were registered with, but `[]`, `get()` and
    `in` all match regardless of case. Registering two names that only
    differ by case is rejected.

    Example:
        reg = CaseInsensitiveRegistry()
        reg["LeakyRelu"] = (leaky_relu, leaky_relu_derivative)

        assert reg["leakyrelu"] is reg["LeakyRelu"]

    """

    def __init__(self, *args, **kwargs):
        super().__init__()
        self._lower_map: dict[str, str] = {}
        if args or kwargs:
            self.update(*args, **kwargs)

    # ==========================================
    # Internal helpers
    # ==========================================
    def _original_key(self, key: str) -> str | None:
        if not isinstance(key, str):
            msg = f"Registry keys must be strings, got {type(key)}"
            raise TypeError(msg)
        return self._lower_map.get(key.lower())

    # ==========================================
    # Core dict overrides
    # ==========================================
    def __setitem__(self, key: str, value):
        existing = self._original_key(key)
        if existing is not None and existing != key:
            msg = f"Cannot register '{key}' - it collides with existing name '{existing}'"
            raise KeyError(msg)
        super().__setitem__(key, value)
        self._lower_map[key.lower()] = key

    def __getitem__(self, key: str):
        orig = self._original_key(key)
        if orig is None:
            raise KeyError(key)
        return super().__getitem__(orig)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._original_key(key) is not None

    def get(self, key: str, default=None):
        orig = self._original_key(key)
        if orig is None:
            return default
        return super().__getitem__(orig)

    def update(self, *args, **kwargs):
        for k, v in dict(*args, **kwargs).items():
            self[k] = v
