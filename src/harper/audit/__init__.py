from harper.audit.store import GENESIS_HASH, AuditStore, canonical_payload, chain_hash

__all__ = ["GENESIS_HASH", "AuditStore", "canonical_payload", "chain_hash"]
