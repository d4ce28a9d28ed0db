from .solana_client import SolanaRpcClient

__all__ = ["SolanaRpcClient"]
