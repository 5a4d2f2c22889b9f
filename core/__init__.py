"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理 Raffle 的狀態轉換（OPEN / CALCULATING）
- Manager：下注、開獎請求與回呼、提領抽成
- Bootstrap：部署 Raffle 並接上 VRF subscription
- Locks：並發控制工具
"""
