"""
Steady Vitality - Coach/Trainee Assignments

Assignment records (models), the status state machine (state),
storage and workload queries (service) and the HTTP surface (routes).
"""
