"""
服務層

這個 package 包含純計算邏輯與外部協作者，不負責狀態轉換：
- ProfitService：抽成與獎池計算
- WinnerService：由亂數選出得主
- UpkeepService：開獎資格判斷
- PayoutService：轉帳
- VrfService：本地亂數提供者
- NetworkConfig / NamingService / HistoryService
"""
