"""Action implementations bound to reporting bundle profiles."""
