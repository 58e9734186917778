"""Existence queries and create mutations for the GraphQL persistence sink."""

# entity type -> (lookup query field, create mutation field, create input type)
ENTITY_OPERATIONS = {
    "Token": ("getToken", "createToken", "CreateTokenInput"),
    "Colony": ("getColony", "createUniqueColony", "CreateUniqueColonyInput"),
    "ColonyTokens": ("getColonyTokens", "createColonyTokens", "CreateColonyTokensInput"),
    "Domain": ("getDomain", "createDomain", "CreateDomainInput"),
    "ColonyExtension": ("getColonyExtension", "createColonyExtension", "CreateColonyExtensionInput"),
    "ColonyAction": ("getColonyAction", "createColonyAction", "CreateColonyActionInput"),
    "ColonyMetadataChangelog": ("getColonyMetadata", "createColonyMetadata", "CreateColonyMetadataInput"),
    "ColonyRole": ("getColonyRole", "createColonyRole", "CreateColonyRoleInput"),
    "User": ("getUser", "createUniqueUser", "CreateUniqueUserInput"),
    "WatchedColonies": ("getWatchedColonies", "createWatchedColonies", "CreateWatchedColoniesInput"),
    "Motion": ("getColonyMotion", "createColonyMotion", "CreateColonyMotionInput"),
    "Decision": ("getColonyDecision", "createColonyDecision", "CreateColonyDecisionInput"),
    "TokenHolder": ("getTokenHolder", "createTokenHolder", "CreateTokenHolderInput"),
}


def build_lookup_query(entity_type: str) -> str:
    lookup_field, _, _ = ENTITY_OPERATIONS[entity_type]
    return """
  query Get%s($id: ID!) {
    %s(id: $id) {
      id
    }
  }
""" % (entity_type, lookup_field)


def build_create_mutation(entity_type: str) -> str:
    _, create_field, input_type = ENTITY_OPERATIONS[entity_type]
    return """
  mutation Create%s($input: %s!) {
    %s(input: $input) {
      id
    }
  }
""" % (entity_type, input_type, create_field)
