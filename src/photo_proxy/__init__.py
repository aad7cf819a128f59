"""Photo AI proxy.

Routes mobile photo-editing jobs to generative vendors, normalizes their
results, tracks asynchronous jobs and notifies devices on completion.
"""
