"""Record layer: schema, coercion, protection, attribute storage, lifecycle and stores."""
