"""GraphQL documents served by the colony subgraph."""

GET_COLONY = """
  query GetColony($address: String!, $upToBlock: Int!) {
    colony(id: $address, block: { number: $upToBlock }) {
      id
      colonyChainId
      ensName
      metadata
      metadataHistory {
        id
        metadata
        transaction {
          block {
            timestamp
          }
        }
      }
      token {
        tokenAddress: id
        decimals
        symbol
      }
    }
    domains(where: { colonyAddress: $address }, block: { number: $upToBlock }) {
      id
      domainChainId
      parent {
        id
        domainChainId
      }
      name
      metadata
      metadataHistory {
        id
        metadata
        transaction {
          block {
            timestamp
          }
        }
      }
    }
  }
"""

GET_EXTENSION_EVENTS = """
  query SubgraphExtensionEvents($colonyAddress: String!, $extensionAddress: String!, $upToBlock: Int!) {
    extensionInstalledEvents: events(
      orderBy: "timestamp",
      orderDirection: desc,
      block: { number: $upToBlock },
      where: {
        name_contains: "ExtensionInstalled",
        args_contains: $colonyAddress,
      }
    ) {
      id
      address
      name
      args
      transaction {
        id
        transactionHash: id
        block {
          id
          number: id
          timestamp
        }
      }
      timestamp
    }
    extensionInitialisedEvents: events(
      orderBy: "timestamp",
      orderDirection: desc,
      block: { number: $upToBlock },
      where: {
        name_contains: "ExtensionInitialised",
        address: $extensionAddress
      }
    ) {
      id
      address
      name
      args
      transaction {
        id
        transactionHash: id
        block {
          id
          number: id
          timestamp
        }
      }
      timestamp
    }
  }
"""

EVENT_FIELDS = """
      id
      address
      name
      args
      transaction {
        hash: id
        block {
          number: id
          timestamp
        }
      }
      timestamp
"""

GET_COLONY_EVENTS = """
  query SubgraphColonyEvents(
    $first: Int!,
    $skip: Int!,
    $colonyAddress: String!,
    $names: [String!]!,
    $upToBlock: Int!
  ) {
    events(
      first: $first,
      skip: $skip,
      orderBy: "timestamp",
      orderDirection: asc,
      block: { number: $upToBlock },
      where: { associatedColony: $colonyAddress, name_in: $names }
    ) {
%s
    }
  }
""" % EVENT_FIELDS

GET_ONE_TX_PAYMENTS = """
  query SubgraphOneTxPayments($first: Int!, $skip: Int!, $colonyAddress: String!, $upToBlock: Int!) {
    oneTxPayments(
      first: $first,
      skip: $skip,
      orderBy: "timestamp",
      orderDirection: asc,
      block: { number: $upToBlock },
      where: { payment_contains: $colonyAddress }
    ) {
      id
      agent
      transaction {
        hash: id
        block {
          number: id
          timestamp
        }
      }
      payment {
        recipient: to
        domain {
          ethDomainId: domainChainId
        }
        fundingPot {
          fundingPotPayouts {
            id
            token {
              address: id
              symbol
              decimals
            }
            amount
          }
        }
      }
      timestamp
    }
  }
"""

GET_MOTIONS = """
  query SubgraphMotions($first: Int!, $skip: Int!, $colonyAddress: String!, $upToBlock: Int!) {
    motions(
      first: $first,
      skip: $skip,
      orderBy: "timestamp",
      orderDirection: asc,
      block: { number: $upToBlock },
      where: { associatedColony: $colonyAddress, action_not: "0x12345678" }
    ) {
      id
      fundamentalChainId
      extensionAddress
      agent
      action
      state
      domain {
        domainChainId
      }
      transaction {
        id
      }
      timestamp
    }
  }
"""

GET_DECISIONS = """
  query SubgraphDecisions($first: Int!, $skip: Int!, $colonyAddress: String!, $upToBlock: Int!) {
    decisions: motions(
      first: $first,
      skip: $skip,
      orderBy: "timestamp",
      orderDirection: asc,
      block: { number: $upToBlock },
      where: { associatedColony: $colonyAddress, action: "0x12345678" }
    ) {
      id
      agent
      annotationHash: annotation
      domain {
        domainChainId
      }
      transaction {
        id
      }
      timestamp
    }
  }
"""
