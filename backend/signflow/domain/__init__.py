"""Domain layer - models, enums, errors and result envelopes"""
