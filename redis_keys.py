REDIS_SNAPSHOT_KEY = "snapshot:{kind}" # kind - one JSON document per snapshot kind

SNAPSHOT_IDENTITIES = "identities"
SNAPSHOT_CONVERSATIONS = "conversations"

# **Example `snapshot:identities` value**
# [{"id": "...", "displayName": "Ada", "inviteCode": "Q7F2K9", "active": true}]
#
# **Example `snapshot:conversations` value**
# [{"roomId": "a:b", "participantA": "a", "participantB": "b", "createdAt": 0,
#   "messages": [{"id": "...", "senderId": "a", "roomId": "a:b", "text": "hi", "sentAt": 0}]}]
