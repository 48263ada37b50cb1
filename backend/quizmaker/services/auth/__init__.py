from quizmaker.services.auth.security import decode_token
from quizmaker.services.auth.identity import (
    get_user_id,
    is_anonymous_id,
    new_anonymous_id,
)
