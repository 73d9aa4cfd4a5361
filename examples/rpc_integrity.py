from rpc_model import RpcIntegrityProof

# @status - done

RpcIntegrityProof().check()
