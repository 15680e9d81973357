"""
Rental kernel domain layer: pure value objects and functions, zero I/O.

- clock: injectable time source
- dates: month arithmetic, term defaults, rental-month keys
- workflow: state machine value objects
- mutations: create/update instructions returned to the host application
"""
