"""
Operations Layer

Business logic operations composed on top of the database layer:
- PlayerOperations: League and player lifecycle
- RankReconciler: Rank swap reaction to completed matches

Match workflows live in ladder.database.match_operations.
"""
