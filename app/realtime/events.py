"""Realtime event names.

The names are part of the wire contract with existing clients and must not
change.
"""

# client -> server
JOIN = "join"
SEND_MESSAGE = "sendMessage"
NEW_POST = "newPost"
NEW_LIKE = "newLike"
NEW_COMMENT = "newComment"
FRIEND_REQUEST = "friendRequest"
FRIEND_ACCEPTED = "friendAccepted"

# server -> client
JOINED = "joined"
ERROR = "error"
POST_CREATED = "postCreated"
POST_LIKED = "postLiked"
POST_COMMENTED = "postCommented"
INCOMING_FRIEND_REQUEST = "incomingFriendRequest"
FRIEND_REQUEST_ACCEPTED = "friendRequestAccepted"
MESSAGE = "message"

# Legacy client relays and the event each one is re-emitted as.
ROOMS_RELAYS = {
    NEW_POST: POST_CREATED,
    NEW_LIKE: POST_LIKED,
    NEW_COMMENT: POST_COMMENTED,
}
USER_RELAYS = {
    FRIEND_REQUEST: INCOMING_FRIEND_REQUEST,
    FRIEND_ACCEPTED: FRIEND_REQUEST_ACCEPTED,
}
