"""
Uniswap V3 pool model: fixed-point price math, price impact and chain reads.
"""
