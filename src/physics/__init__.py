"""Road-network physics: charge-constrained route precomputation."""
