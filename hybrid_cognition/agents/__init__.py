"""Shared data types, context analysis and the meta-reasoner"""
