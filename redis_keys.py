REDIS_USERS_KEY = "room:users:{slug}" # room id - set of display names
REDIS_USERS_PATTERN = "room:users:*"

# **Membership**
# - On join: `SADD room:users:{id} {name}`; the reply tells whether the name was new.
# - On leave/disconnect: `SREM room:users:{id} {name}`. Redis drops the key in the
#   same command when the set becomes empty, so an empty room never lingers.


def room_id_from_users_key(key: str) -> str:
    return key[len(REDIS_USERS_KEY.format(slug="")):]
