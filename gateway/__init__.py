"""gateway/ -- Credential-substituting proxy to the upstream generative-language API."""
