class ConfigurationError(ValueError):
    """Raised before any computation when an operation references unknown configuration."""


class UnknownScenarioError(ConfigurationError):
    def __init__(self, name: str):
        super().__init__(f"Unknown scenario: {name}")
        self.name = name


class UnknownStressScenarioError(ConfigurationError):
    def __init__(self, name: str):
        super().__init__(f"Unknown stress scenario: {name}")
        self.name = name


class UnknownPoolError(ConfigurationError):
    def __init__(self, pair: str):
        super().__init__(f"Unknown liquidity pool: {pair}")
        self.pair = pair
