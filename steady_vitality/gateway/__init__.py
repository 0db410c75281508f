"""
Steady Vitality - Gateway

Request middleware and role/capability checks shared by every router.
"""
