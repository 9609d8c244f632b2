"""Request editing: builder operations and recomposition."""
