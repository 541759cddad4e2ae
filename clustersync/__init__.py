"""跨集群 MongoDB 备份与快照同步。"""
