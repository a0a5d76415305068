"""
Services
Matching engine, persistence, operator actions, reconciliation and jobs
"""
