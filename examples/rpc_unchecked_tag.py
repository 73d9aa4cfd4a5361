from rpc_model import UncheckedTagProof

# @status - expected to fail in server_respond:
# without the tag check the server accepts its own response as a request.

UncheckedTagProof().check()
