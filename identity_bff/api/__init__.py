"""HTTP interface of the Identity BFF."""
