"""
Restaurant recommendation engine.

Responsibilities:
- Hold the relational entity store and its parameterized queries.
- Generate candidates by preference, history, peers, recency and filters.
- Score user-user and restaurant-restaurant similarity.
- Merge concurrent strategies into one mixed ranking.
"""
