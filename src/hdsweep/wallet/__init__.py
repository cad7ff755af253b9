"""
Key derivation, address generation, discovery, and signing for 2-of-3 multisig sweeps.
"""
