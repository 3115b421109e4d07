E_INTERNAL = "E_INTERNAL_ERROR"
E_INVALID_PARAMS = "E_INVALID_PARAMS"
E_NOT_FOUND = "E_NOT_FOUND"
