"""GraphQL documents used by the indexer."""
