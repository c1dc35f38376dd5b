"""
Constants for secp256k1, the curve behind EOS K1 keys.
"""

# Group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Valid private key range is [1, N-1]
SECP256K1_MIN = 1
SECP256K1_MAX = SECP256K1_N - 1

# Signatures with s above this are rewritten as N - s
SECP256K1_HALF_N = SECP256K1_N // 2
