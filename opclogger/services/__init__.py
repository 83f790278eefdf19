"""
Data Logger Services

- session - OPC UA session acquisition, reads, teardown
- logging - Scheduled logging and keep-alive tasks, CSV output
"""
