"""Core contracts: intent registry, batch aggregator, swap executor"""
