"""Default tracked assets for the Up/Down period markets."""

from updown.config.schema import AssetConfig

DEFAULT_ASSETS: list[AssetConfig] = [
    AssetConfig(symbol="BTC", slug="bitcoin"),
    AssetConfig(symbol="ETH", slug="ethereum"),
    AssetConfig(symbol="SOL", slug="solana"),
    AssetConfig(symbol="XRP", slug="xrp"),
]
