"""
Engine Layer

Configuration, aggregation scheduling and runtime wiring for the weather pipeline.
"""
