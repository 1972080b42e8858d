"""
Tranche Yield Unit Tests
========================

This package contains unit tests for the allocation engine and the API
surface.

Test Modules
------------
test_fixed_point
    Floor subtraction, explicit zero-guard division, scaling helpers.
test_moving_average
    EMA update rule and window capping.
test_proportions
    Yield target, regime classification and the three share formulas.
test_recipients
    Recipient set validation and weighted splits.
test_distributor
    Full distribution cycles, conservation, timer and re-entrancy.
test_governance
    Governed setters, authorization and change notifications.
test_persistence
    Config loader, state store and allocation reports.
test_api
    HTTP endpoints and role-based access control.

Running Tests
-------------
Execute all tests with pytest::

    pytest tranche_yield/unit_tests/ -v
"""
