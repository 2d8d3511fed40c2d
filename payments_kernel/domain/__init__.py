"""Pure domain helpers: amounts, clocks and ledger payment facts."""
