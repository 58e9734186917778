"""GraphQL documents served by the colony profile server."""

USER_FIELDS = """
      id
      profile {
        username
        avatarHash
        displayName
        bio
        walletAddress
        location
        website
      }
      colonyAddresses
      tokenAddresses
"""

GET_COLONY_MEMBERS = """
  query GetColonyMembers($address: String!) {
    subscribedUsers(colonyAddress: $address) {
%s
    }
  }
""" % USER_FIELDS

GET_USER = """
  query GetUser($address: String!) {
    user(address: $address) {
%s
    }
  }
""" % USER_FIELDS
